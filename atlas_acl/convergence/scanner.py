"""Paginated existence checks against the project access list."""

from __future__ import annotations

import logging

from atlas_acl.convergence.errors import (
    DeadlineExceededError,
    ErrorCategory,
    ExistenceScanIncompleteError,
    PermanentFailureError,
    classify,
)
from atlas_acl.convergence.timing import BackoffPolicy, Deadline
from atlas_acl.providers.base import AccessListApi, AccessListApiError, record_matches

logger = logging.getLogger(__name__)

SCAN_OPERATION = "scan_access_list"


class ExistenceScanner:
    """Walk the access list page by page looking for one entry.

    Pages are not assumed stable while the remote side converges, so any
    transient failure restarts the traversal from page 1 instead of resuming
    where it stopped. A negative answer is only given after a complete pass
    that ended on the last page.
    """

    def __init__(
        self,
        api: AccessListApi,
        *,
        backoff: BackoffPolicy | None = None,
        envelope_timeout_seconds: float = 2 * 60,
    ) -> None:
        self._api = api
        self._backoff = backoff or BackoffPolicy()
        self._envelope_timeout_seconds = envelope_timeout_seconds

    def scan(self, project_id: str, entry: str, deadline: Deadline) -> bool:
        envelope = deadline.narrowed(self._envelope_timeout_seconds)
        intervals = self._backoff.intervals()
        passes = 0
        last_error: AccessListApiError | None = None

        while True:
            passes += 1
            try:
                found = self._scan_once(project_id, entry, envelope)
            except AccessListApiError as exc:
                if classify(exc) is not ErrorCategory.TRANSIENT:
                    raise PermanentFailureError(
                        f"error getting access list information: {exc}",
                        operation=SCAN_OPERATION,
                        project_id=project_id,
                        entry=entry,
                    ) from exc
                last_error = exc
                logger.info(
                    "transient listing failure project_id=%s entry=%s pass=%d; "
                    "restarting scan from page 1: %s",
                    project_id,
                    entry,
                    passes,
                    exc,
                )
            else:
                if found is not None:
                    return found

            if not envelope.sleep(next(intervals)):
                break

        if deadline.expired():
            raise DeadlineExceededError(
                "deadline exceeded while scanning access list",
                operation=SCAN_OPERATION,
                project_id=project_id,
                entry=entry,
            ) from last_error
        raise ExistenceScanIncompleteError(
            f"access list scan did not complete after {passes} passes: {last_error}",
            operation=SCAN_OPERATION,
            project_id=project_id,
            entry=entry,
        ) from last_error

    def _scan_once(self, project_id: str, entry: str, envelope: Deadline) -> bool | None:
        # None means the envelope ran out part way through the page set.
        page_number = 1
        while True:
            if page_number > 1 and envelope.expired():
                return None
            page = self._api.list_page(project_id, page_number)
            logger.debug(
                "scanned access list page project_id=%s page=%d records=%d last=%s",
                project_id,
                page.metadata.current_page,
                len(page.records),
                page.metadata.is_last_page,
            )
            if any(record_matches(record, entry) for record in page.records):
                return True
            if page.metadata.is_last_page:
                return False
            page_number = max(page.metadata.current_page, page_number) + 1
