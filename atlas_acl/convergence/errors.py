"""Convergence error taxonomy and the remote-failure classifier."""

from __future__ import annotations

from enum import StrEnum

from atlas_acl.providers.base import AccessListTransportError

TRANSIENT_MARKERS = ("Unexpected error", "UNEXPECTED_ERROR")
NOT_FOUND_MARKERS = (
    "ATLAS_ACCESS_LIST_NOT_FOUND",
    "ATLAS_NETWORK_PERMISSION_ENTRY_NOT_FOUND",
    "RESOURCE_NOT_FOUND",
)
# Only consulted for failures without an HTTP status.
TRANSIENT_STATUS_MARKERS = ("500",)
NOT_FOUND_STATUS_MARKERS = ("404",)


class ErrorCategory(StrEnum):
    TRANSIENT = "transient"
    NOT_FOUND_EXISTING = "not_found_existing"
    PERMANENT_FAILURE = "permanent_failure"


class ConvergenceError(Exception):
    """Base exception for convergence failures surfaced to callers."""

    error_code = "convergence_error"

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        project_id: str | None = None,
        entry: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.project_id = project_id
        self.entry = entry

    def __str__(self) -> str:
        message = super().__str__()
        context = [f"operation={self.operation}"]
        if self.project_id:
            context.append(f"project_id={self.project_id}")
        if self.entry:
            context.append(f"entry={self.entry}")
        return f"{message} ({' '.join(context)})"


class EntryValidationError(ConvergenceError):
    error_code = "entry_validation_error"


class CompositeIdError(ConvergenceError):
    error_code = "composite_id_error"


class PermanentFailureError(ConvergenceError):
    error_code = "permanent_failure"


class DeadlineExceededError(ConvergenceError):
    error_code = "deadline_exceeded"


class ExistenceScanIncompleteError(ConvergenceError):
    """Raised when the scan envelope expires while listing failures are still transient."""

    error_code = "existence_scan_incomplete"


def classify(exc: BaseException) -> ErrorCategory:
    """Map a raw remote failure onto the retry taxonomy.

    The status code and API error code come first. The bare ``500``/``404``
    text markers are only matched for failures without an HTTP status.
    Server-side faults win over not-found markers; everything else is
    permanent.
    """
    if isinstance(exc, AccessListTransportError):
        return ErrorCategory.TRANSIENT

    status_code = getattr(exc, "status_code", None)
    api_error_code = getattr(exc, "api_error_code", None) or ""
    message = str(exc)
    has_status = isinstance(status_code, int)

    if isinstance(status_code, int) and status_code >= 500:
        return ErrorCategory.TRANSIENT
    if api_error_code in TRANSIENT_MARKERS or _contains_marker(message, TRANSIENT_MARKERS):
        return ErrorCategory.TRANSIENT
    if not has_status and _contains_marker(message, TRANSIENT_STATUS_MARKERS):
        return ErrorCategory.TRANSIENT

    if status_code == 404:
        return ErrorCategory.NOT_FOUND_EXISTING
    if api_error_code in NOT_FOUND_MARKERS or _contains_marker(message, NOT_FOUND_MARKERS):
        return ErrorCategory.NOT_FOUND_EXISTING
    if not has_status and _contains_marker(message, NOT_FOUND_STATUS_MARKERS):
        return ErrorCategory.NOT_FOUND_EXISTING

    return ErrorCategory.PERMANENT_FAILURE


def _contains_marker(message: str, markers: tuple[str, ...]) -> bool:
    return any(marker in message for marker in markers)
