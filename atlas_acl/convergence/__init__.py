"""Convergence engine for access-list entries."""

from atlas_acl.convergence.engine import (
    AccessListConvergenceEngine,
    ConvergenceOutcome,
    ConvergenceStatus,
)
from atlas_acl.convergence.entries import DesiredEntry, entry_key, validate_desired_entry
from atlas_acl.convergence.errors import (
    CompositeIdError,
    ConvergenceError,
    DeadlineExceededError,
    EntryValidationError,
    ErrorCategory,
    ExistenceScanIncompleteError,
    PermanentFailureError,
    classify,
)
from atlas_acl.convergence.identity import decode_id, encode_id, parse_import_id
from atlas_acl.convergence.scanner import ExistenceScanner
from atlas_acl.convergence.timing import BackoffPolicy, Clock, Deadline, SystemClock

__all__ = [
    "AccessListConvergenceEngine",
    "BackoffPolicy",
    "Clock",
    "CompositeIdError",
    "ConvergenceError",
    "ConvergenceOutcome",
    "ConvergenceStatus",
    "Deadline",
    "DeadlineExceededError",
    "DesiredEntry",
    "EntryValidationError",
    "ErrorCategory",
    "ExistenceScanIncompleteError",
    "ExistenceScanner",
    "PermanentFailureError",
    "SystemClock",
    "classify",
    "decode_id",
    "encode_id",
    "entry_key",
    "parse_import_id",
    "validate_desired_entry",
]
