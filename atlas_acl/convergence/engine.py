"""Convergence loops for access-list entries on an eventually consistent API."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum

from atlas_acl.config import AppSettings
from atlas_acl.convergence.entries import DesiredEntry, entry_key, validate_desired_entry
from atlas_acl.convergence.errors import (
    CompositeIdError,
    ConvergenceError,
    DeadlineExceededError,
    ErrorCategory,
    ExistenceScanIncompleteError,
    PermanentFailureError,
    classify,
)
from atlas_acl.convergence.identity import decode_id, encode_id, parse_import_id
from atlas_acl.convergence.scanner import ExistenceScanner
from atlas_acl.convergence.timing import BackoffPolicy, Clock, Deadline, SystemClock
from atlas_acl.providers.base import AccessListApi, AccessListApiError, AccessListRecord

logger = logging.getLogger(__name__)

CREATE_OPERATION = "create_access_list_entry"
DELETE_OPERATION = "delete_access_list_entry"
READ_OPERATION = "read_access_list_entry"
IMPORT_OPERATION = "import_access_list_entry"

DEFAULT_CREATE_TIMEOUT_SECONDS = 45 * 60
DEFAULT_DELETE_TIMEOUT_SECONDS = 45 * 60
DEFAULT_READ_TIMEOUT_SECONDS = 2 * 60
DEFAULT_SCAN_TIMEOUT_SECONDS = 2 * 60


class ConvergenceStatus(StrEnum):
    PENDING = "pending"
    CONVERGED = "converged"
    FAILED = "failed"
    DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass(frozen=True, slots=True)
class ConvergenceOutcome:
    status: ConvergenceStatus
    attempts: int
    composite_id: str | None = None
    record: AccessListRecord | None = None
    reason: str | None = None
    error: ConvergenceError | None = None

    @property
    def converged(self) -> bool:
        return self.status is ConvergenceStatus.CONVERGED

    def raise_for_outcome(self) -> None:
        if self.status is ConvergenceStatus.CONVERGED:
            return
        if self.error is not None:
            raise self.error
        raise ConvergenceError(
            self.reason or f"convergence ended with status={self.status.value}",
            operation="converge",
        )


_PENDING = ConvergenceOutcome(status=ConvergenceStatus.PENDING, attempts=0)

PassStep = Callable[[Deadline], ConvergenceOutcome]


class AccessListConvergenceEngine:
    """Drive access-list entries to their desired remote state.

    Every loop is a blocking, single-threaded poll over the injected
    ``AccessListApi``; the remote API is the only source of truth and
    nothing observed in one attempt is trusted in the next.
    """

    def __init__(
        self,
        api: AccessListApi,
        *,
        clock: Clock | None = None,
        create_backoff: BackoffPolicy | None = None,
        retry_backoff: BackoffPolicy | None = None,
        create_timeout_seconds: float = DEFAULT_CREATE_TIMEOUT_SECONDS,
        delete_timeout_seconds: float = DEFAULT_DELETE_TIMEOUT_SECONDS,
        read_timeout_seconds: float = DEFAULT_READ_TIMEOUT_SECONDS,
        scan_timeout_seconds: float = DEFAULT_SCAN_TIMEOUT_SECONDS,
    ) -> None:
        self._api = api
        self._clock = clock or SystemClock()
        self._create_backoff = create_backoff or BackoffPolicy(
            initial_delay_seconds=4.0,
            min_interval_seconds=2.0,
        )
        self._retry_backoff = retry_backoff or BackoffPolicy()
        self._create_timeout_seconds = create_timeout_seconds
        self._delete_timeout_seconds = delete_timeout_seconds
        self._read_timeout_seconds = read_timeout_seconds
        self._scanner = ExistenceScanner(
            api,
            backoff=self._retry_backoff,
            envelope_timeout_seconds=scan_timeout_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        api: AccessListApi,
        settings: AppSettings,
        *,
        clock: Clock | None = None,
    ) -> AccessListConvergenceEngine:
        return cls(
            api,
            clock=clock,
            create_backoff=BackoffPolicy(
                initial_delay_seconds=settings.create_initial_delay_seconds,
                min_interval_seconds=settings.create_min_interval_seconds,
                max_interval_seconds=settings.max_interval_seconds,
            ),
            retry_backoff=BackoffPolicy(
                min_interval_seconds=settings.retry_min_interval_seconds,
                max_interval_seconds=settings.max_interval_seconds,
            ),
            create_timeout_seconds=settings.create_timeout_seconds,
            delete_timeout_seconds=settings.delete_timeout_seconds,
            read_timeout_seconds=settings.read_timeout_seconds,
            scan_timeout_seconds=settings.scan_timeout_seconds,
        )

    def create_and_converge(
        self,
        *,
        project_id: str,
        desired: DesiredEntry,
        timeout_seconds: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ConvergenceOutcome:
        """Create ``desired`` and wait until it is visible in the project access list.

        The create call is re-issued on every pass: after a transient failure
        the entry may not exist at all, so polling alone could never converge.
        Once visible, the record is re-read directly, treating not-found as
        not yet visible. Raises ``EntryValidationError`` before any remote
        call for invalid input.
        """
        validate_desired_entry(desired, project_id=project_id)
        key = entry_key(desired)
        deadline = Deadline(
            clock=self._clock,
            timeout_seconds=(
                self._create_timeout_seconds if timeout_seconds is None else timeout_seconds
            ),
            cancel_event=cancel_event,
        )

        def step(pass_deadline: Deadline) -> ConvergenceOutcome:
            return self._create_pass(
                project_id=project_id,
                desired=desired,
                key=key,
                deadline=pass_deadline,
            )

        logger.info("creating access list entry project_id=%s entry=%s", project_id, key)
        outcome = self._run_until_converged(
            operation=CREATE_OPERATION,
            project_id=project_id,
            entry=key,
            deadline=deadline,
            backoff=self._create_backoff,
            step=step,
        )
        if not outcome.converged or outcome.composite_id is None:
            return outcome
        return self._refresh_created(
            outcome,
            composite_id=outcome.composite_id,
            project_id=project_id,
            entry=key,
            cancel_event=cancel_event,
        )

    def delete_and_converge(
        self,
        composite_id: str,
        *,
        timeout_seconds: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ConvergenceOutcome:
        """Delete the entry behind ``composite_id`` and wait until a direct read reports it gone."""
        project_id, entry = decode_id(composite_id)
        deadline = Deadline(
            clock=self._clock,
            timeout_seconds=(
                self._delete_timeout_seconds if timeout_seconds is None else timeout_seconds
            ),
            cancel_event=cancel_event,
        )

        def step(_: Deadline) -> ConvergenceOutcome:
            return self._delete_pass(
                composite_id=composite_id,
                project_id=project_id,
                entry=entry,
            )

        logger.info("deleting access list entry project_id=%s entry=%s", project_id, entry)
        return self._run_until_converged(
            operation=DELETE_OPERATION,
            project_id=project_id,
            entry=entry,
            deadline=deadline,
            backoff=self._retry_backoff,
            step=step,
        )

    def reconcile(
        self,
        composite_id: str,
        *,
        is_newly_created: bool = False,
        timeout_seconds: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AccessListRecord | None:
        """Re-read one entry, returning ``None`` once it is confirmed deleted out of band.

        While ``is_newly_created`` is set a not-found answer only means the entry
        is not visible yet, so the read is retried instead.
        """
        try:
            project_id, entry = decode_id(composite_id)
        except CompositeIdError as exc:
            logger.warning("discarding undecodable access list handle %r: %s", composite_id, exc)
            return None

        deadline = Deadline(
            clock=self._clock,
            timeout_seconds=(
                self._read_timeout_seconds if timeout_seconds is None else timeout_seconds
            ),
            cancel_event=cancel_event,
        )
        intervals = self._retry_backoff.intervals()
        attempts = 0
        while True:
            attempts += 1
            try:
                return self._api.get(project_id, entry)
            except AccessListApiError as exc:
                category = classify(exc)
                if category is ErrorCategory.PERMANENT_FAILURE:
                    raise PermanentFailureError(
                        f"error getting access list information: {exc}",
                        operation=READ_OPERATION,
                        project_id=project_id,
                        entry=entry,
                    ) from exc
                if category is ErrorCategory.NOT_FOUND_EXISTING and not is_newly_created:
                    logger.info(
                        "access list entry removed outside management project_id=%s entry=%s",
                        project_id,
                        entry,
                    )
                    return None
                logger.info(
                    "retrying access list read project_id=%s entry=%s attempt=%d category=%s",
                    project_id,
                    entry,
                    attempts,
                    category.value,
                )
                last_error = exc

            if not deadline.sleep(next(intervals)):
                raise DeadlineExceededError(
                    f"deadline exceeded after {attempts} read attempts: {last_error}",
                    operation=READ_OPERATION,
                    project_id=project_id,
                    entry=entry,
                ) from last_error

    def import_entry(self, import_id: str) -> str:
        """Adopt an existing entry given as ``{project_id}-{entry}`` and return its composite id."""
        project_id, entry = parse_import_id(import_id)
        try:
            self._api.get(project_id, entry)
        except AccessListApiError as exc:
            raise PermanentFailureError(
                f"couldn't import access list entry {entry} in project {project_id}: {exc}",
                operation=IMPORT_OPERATION,
                project_id=project_id,
                entry=entry,
            ) from exc
        return encode_id(project_id, entry)

    def _run_until_converged(
        self,
        *,
        operation: str,
        project_id: str,
        entry: str,
        deadline: Deadline,
        backoff: BackoffPolicy,
        step: PassStep,
    ) -> ConvergenceOutcome:
        intervals = backoff.intervals()
        attempts = 0
        if deadline.sleep(backoff.initial_delay_seconds):
            while True:
                attempts += 1
                logger.debug(
                    "%s attempt=%d project_id=%s entry=%s remaining=%.1fs",
                    operation,
                    attempts,
                    project_id,
                    entry,
                    deadline.remaining(),
                )
                result = step(deadline)
                if result.status is not ConvergenceStatus.PENDING:
                    outcome = ConvergenceOutcome(
                        status=result.status,
                        attempts=attempts,
                        composite_id=result.composite_id,
                        record=result.record,
                        reason=result.reason,
                        error=result.error,
                    )
                    _log_outcome(operation, project_id, entry, outcome)
                    return outcome
                if not deadline.sleep(next(intervals)):
                    break

        reason = "convergence was cancelled" if deadline.cancelled else "deadline exceeded"
        outcome = ConvergenceOutcome(
            status=ConvergenceStatus.DEADLINE_EXCEEDED,
            attempts=attempts,
            reason=f"{reason} after {attempts} attempts",
            error=DeadlineExceededError(
                f"{reason} after {attempts} attempts",
                operation=operation,
                project_id=project_id,
                entry=entry,
            ),
        )
        _log_outcome(operation, project_id, entry, outcome)
        return outcome

    def _create_pass(
        self,
        *,
        project_id: str,
        desired: DesiredEntry,
        key: str,
        deadline: Deadline,
    ) -> ConvergenceOutcome:
        try:
            record = self._api.create(project_id, desired)
        except AccessListApiError as exc:
            # A transient create ends the pass without scanning; the next pass
            # re-issues the create.
            if classify(exc) is ErrorCategory.TRANSIENT:
                logger.info(
                    "transient create failure project_id=%s entry=%s: %s",
                    project_id,
                    key,
                    exc,
                )
                return _PENDING
            return _failed(
                PermanentFailureError(
                    f"error creating access list entry: {exc}",
                    operation=CREATE_OPERATION,
                    project_id=project_id,
                    entry=key,
                ),
                cause=exc,
            )

        try:
            exists = self._scanner.scan(project_id, key, deadline)
        except ExistenceScanIncompleteError as exc:
            logger.info("existence scan incomplete, retrying create: %s", exc)
            return _PENDING
        except DeadlineExceededError as exc:
            error = DeadlineExceededError(
                str(exc.args[0]),
                operation=CREATE_OPERATION,
                project_id=project_id,
                entry=key,
            )
            error.__cause__ = exc
            return ConvergenceOutcome(
                status=ConvergenceStatus.DEADLINE_EXCEEDED,
                attempts=0,
                reason=str(error),
                error=error,
            )
        except PermanentFailureError as exc:
            return _failed(
                PermanentFailureError(
                    str(exc.args[0]),
                    operation=CREATE_OPERATION,
                    project_id=project_id,
                    entry=key,
                ),
                cause=exc,
            )

        if not exists:
            logger.debug("access list entry not visible yet project_id=%s entry=%s", project_id, key)
            return _PENDING
        return ConvergenceOutcome(
            status=ConvergenceStatus.CONVERGED,
            attempts=0,
            composite_id=encode_id(project_id, key),
            record=record,
        )

    def _refresh_created(
        self,
        outcome: ConvergenceOutcome,
        *,
        composite_id: str,
        project_id: str,
        entry: str,
        cancel_event: threading.Event | None,
    ) -> ConvergenceOutcome:
        """Re-read a converged entry, treating not-found as not visible yet."""
        try:
            record = self.reconcile(
                composite_id,
                is_newly_created=True,
                cancel_event=cancel_event,
            )
        except DeadlineExceededError as exc:
            error = DeadlineExceededError(
                f"created entry never became readable: {exc}",
                operation=CREATE_OPERATION,
                project_id=project_id,
                entry=entry,
            )
            error.__cause__ = exc
            return replace(
                outcome,
                status=ConvergenceStatus.DEADLINE_EXCEEDED,
                reason=str(error),
                error=error,
            )
        except PermanentFailureError as exc:
            failed = _failed(
                PermanentFailureError(
                    f"error reading created access list entry: {exc}",
                    operation=CREATE_OPERATION,
                    project_id=project_id,
                    entry=entry,
                ),
                cause=exc,
            )
            return replace(failed, attempts=outcome.attempts, composite_id=composite_id)
        return replace(outcome, record=record)

    def _delete_pass(
        self,
        *,
        composite_id: str,
        project_id: str,
        entry: str,
    ) -> ConvergenceOutcome:
        try:
            self._api.delete(project_id, entry)
        except AccessListApiError as exc:
            category = classify(exc)
            if category is ErrorCategory.TRANSIENT:
                logger.info(
                    "transient delete failure project_id=%s entry=%s: %s",
                    project_id,
                    entry,
                    exc,
                )
                return _PENDING
            if category is ErrorCategory.PERMANENT_FAILURE:
                return _failed(
                    PermanentFailureError(
                        f"error deleting access list entry: {exc}",
                        operation=DELETE_OPERATION,
                        project_id=project_id,
                        entry=entry,
                    ),
                    cause=exc,
                )
            logger.info(
                "delete reported entry already absent project_id=%s entry=%s",
                project_id,
                entry,
            )

        try:
            self._api.get(project_id, entry)
        except AccessListApiError as exc:
            if classify(exc) is ErrorCategory.NOT_FOUND_EXISTING:
                return ConvergenceOutcome(
                    status=ConvergenceStatus.CONVERGED,
                    attempts=0,
                    composite_id=composite_id,
                )
            # The delete itself went through, so an ambiguous read is retried.
            logger.info(
                "read after delete failed project_id=%s entry=%s, retrying: %s",
                project_id,
                entry,
                exc,
            )
            return _PENDING

        logger.debug("access list entry still exists project_id=%s entry=%s", project_id, entry)
        return _PENDING


def _failed(error: ConvergenceError, *, cause: BaseException | None = None) -> ConvergenceOutcome:
    if cause is not None:
        error.__cause__ = cause
    return ConvergenceOutcome(
        status=ConvergenceStatus.FAILED,
        attempts=0,
        reason=str(error),
        error=error,
    )


def _log_outcome(
    operation: str,
    project_id: str,
    entry: str,
    outcome: ConvergenceOutcome,
) -> None:
    if outcome.converged:
        logger.info(
            "%s converged project_id=%s entry=%s attempts=%d",
            operation,
            project_id,
            entry,
            outcome.attempts,
        )
        return
    logger.warning(
        "%s ended status=%s project_id=%s entry=%s attempts=%d reason=%s",
        operation,
        outcome.status.value,
        project_id,
        entry,
        outcome.attempts,
        outcome.reason,
    )
