"""Exception taxonomy for beadsync mutations.

Every terminal outcome of a mutation is one of these.  Only
``VersionConflictError`` is ever retried, and only by the retry coordinator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from beadsync.merge import MergeResult


class BeadsyncError(Exception):
    """Base class for all beadsync errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.retry_count = 0
        self.conflict_detected = False


class ValidationError(BeadsyncError, ValueError):
    """A request body or field value is malformed."""


class NotFoundError(BeadsyncError, LookupError):
    """The target file or record does not exist."""


class MergeConflictError(BeadsyncError):
    """Local and remote changed the same field to different values."""

    def __init__(self, message: str, merge_result: MergeResult) -> None:
        super().__init__(message)
        self.merge_result = merge_result
        self.conflict_detected = True


class StoreError(BeadsyncError, RuntimeError):
    """The backing content store failed for a reason other than a lost race."""


class VersionConflictError(StoreError):
    """The version token was stale: another writer won the race."""


class WriteRejectedError(StoreError):
    """The store refused the write; retrying the same request cannot help."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetriesExhaustedError(BeadsyncError):
    """Every attempt lost a version race."""


class MutationCancelledError(BeadsyncError):
    """The caller aborted the mutation between attempts."""
