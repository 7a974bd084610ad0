"""Fetch / prepare / conditional-write loop with classified retries.

Every mutation runs through ``RetryCoordinator.run``::

    FETCH -> PREPARE (decode, merge, apply) -> WRITE -> done
                                                    -> RETRY -> FETCH
                                                    -> FAIL

Only a lost version race (``VersionConflictError``) is retried.  Anything
raised while preparing (merge conflict, missing record, bad input) and any
other store failure ends the mutation immediately, without a write.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from beadsync.constants import BASE_DELAY_MS, MAX_DELAY_MS, MAX_RETRIES
from beadsync.errors import (
    BeadsyncError,
    MutationCancelledError,
    NotFoundError,
    RetriesExhaustedError,
    VersionConflictError,
)

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable

    from beadsync.content_store import ContentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bound and backoff schedule for version-race retries."""

    max_retries: int = MAX_RETRIES
    base_delay: float = BASE_DELAY_MS / 1000
    max_delay: float = MAX_DELAY_MS / 1000

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            msg = "max_retries must not be negative"
            raise ValueError(msg)
        if self.base_delay < 0 or self.max_delay < self.base_delay:
            msg = "delays must satisfy 0 <= base_delay <= max_delay"
            raise ValueError(msg)

    @property
    def max_attempts(self) -> int:
        """Total number of tries, the first one included."""
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before retrying after ``attempt`` (0-based) failed."""
        return min(self.base_delay * 2**attempt, self.max_delay)


@dataclass(frozen=True)
class Snapshot:
    """A file as read at the start of one attempt."""

    path: str
    data: bytes | None  # None when the file does not exist
    version: str | None
    attempt: int

    @property
    def exists(self) -> bool:
        """Check whether the file existed when read."""
        return self.data is not None


@dataclass(frozen=True)
class Commit(Generic[T]):
    """What one attempt wants to write.

    ``data=None`` means there is nothing to write and the mutation is done.
    """

    value: T
    data: bytes | None = None
    message: str = ""


@dataclass(frozen=True)
class CommitOutcome(Generic[T]):
    """Terminal success of a mutation."""

    value: T
    retry_count: int
    conflict_detected: bool
    written: bool


class RetryCoordinator:
    """Run a mutation against a content store until it commits or fails.

    The coordinator holds no state between calls; one instance may be
    shared by concurrent requests.
    """

    def __init__(
        self,
        store: ContentStore,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: The content store to read from and write to.
            policy: Retry bound and backoff (default: 3 retries, 100ms base).
            sleep: Delay function, replaceable for sleep-free tests.
        """
        self.store = store
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def _fetch(self, path: str, attempt: int, *, missing_ok: bool) -> Snapshot:
        try:
            content = self.store.read(path)
        except NotFoundError:
            if not missing_ok:
                raise
            return Snapshot(path=path, data=None, version=None, attempt=attempt)
        return Snapshot(
            path=path,
            data=content.data,
            version=content.version,
            attempt=attempt,
        )

    def run(
        self,
        path: str,
        prepare: Callable[[Snapshot], Commit[T]],
        *,
        missing_ok: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> CommitOutcome[T]:
        """Fetch, prepare and conditionally write ``path`` until done.

        Args:
            path: Store path of the file to mutate.
            prepare: Builds the write for one attempt from a fresh snapshot.
                Called again on every retry, so it must derive everything
                from the snapshot and its own original inputs.
            missing_ok: Treat a missing file as empty instead of failing.
            cancel_event: When set, no new attempt is started.

        Returns:
            The committed outcome.

        Raises:
            BeadsyncError: Terminal failure, annotated with ``retry_count``
                and ``conflict_detected``.
        """
        conflict_detected = False

        for attempt in range(self.policy.max_attempts):
            try:
                if cancel_event is not None and cancel_event.is_set():
                    msg = f"Mutation of {path} cancelled before attempt {attempt + 1}"
                    raise MutationCancelledError(msg)

                snapshot = self._fetch(path, attempt, missing_ok=missing_ok)
                commit = prepare(snapshot)
                if commit.data is None:
                    return CommitOutcome(
                        value=commit.value,
                        retry_count=attempt,
                        conflict_detected=conflict_detected,
                        written=False,
                    )

                try:
                    self.store.write_if_version(
                        path,
                        commit.data,
                        snapshot.version,
                        commit.message,
                    )
                except VersionConflictError as e:
                    conflict_detected = True
                    if attempt < self.policy.max_retries:
                        delay = self.policy.delay_for(attempt)
                        logger.info(
                            "Version race on %s (attempt %d/%d), retrying in %.3fs",
                            path,
                            attempt + 1,
                            self.policy.max_attempts,
                            delay,
                        )
                        self.sleep(delay)
                        continue
                    msg = (
                        f"Failed to save after {self.policy.max_attempts} attempts "
                        "due to concurrent modifications. Please try again."
                    )
                    raise RetriesExhaustedError(msg) from e
            except BeadsyncError as e:
                e.retry_count = attempt
                e.conflict_detected = e.conflict_detected or conflict_detected
                raise

            return CommitOutcome(
                value=commit.value,
                retry_count=attempt,
                conflict_detected=conflict_detected,
                written=True,
            )

        # Unreachable: the last attempt either returns or raises
        msg = f"Failed to save {path}"
        raise RetriesExhaustedError(msg)
