"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import orjson
import pytest

from beadsync.action_log import ActionLogEntry
from beadsync.constants import ISSUES_PATH
from beadsync.content_store import MemoryContentStore
from beadsync.errors import VersionConflictError
from beadsync.operations import IssueService
from beadsync.retry import RetryPolicy

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def issue_record(**kwargs: Any) -> dict[str, Any]:
    """Build a minimal issue record dict as found in issues.jsonl."""
    defaults: dict[str, Any] = {
        "id": "bd-a1",
        "title": "Test",
        "description": "",
        "status": "open",
        "priority": 3,
        "issue_type": "task",
        "assignee": "",
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
    }
    defaults.update(kwargs)
    return defaults


def jsonl(*records: dict[str, Any]) -> bytes:
    """Encode records as JSONL bytes."""
    return b"".join(orjson.dumps(r) + b"\n" for r in records)


def read_records(store: MemoryContentStore, path: str = ISSUES_PATH) -> list[Any]:
    """Decode the raw JSONL content of ``path``."""
    data = store.get(path) or b""
    return [orjson.loads(line) for line in data.splitlines() if line.strip()]


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@dataclass
class RecordingActionLog:
    """Action log sink that keeps entries in memory."""

    entries: list[ActionLogEntry] = field(default_factory=list)

    def append(self, entry: ActionLogEntry) -> None:
        self.entries.append(entry)


class RacingStore(MemoryContentStore):
    """Memory store where another writer wins the next ``races`` writes.

    Before each raced write the file is changed by ``interfere``, as if a
    concurrent actor had committed first, so the conditional write fails.
    """

    def __init__(
        self,
        files: dict[str, bytes] | None = None,
        *,
        races: int = 0,
        interfere: Callable[[bytes | None], bytes] | None = None,
    ) -> None:
        super().__init__(files)
        self.races = races
        self.interfere = interfere or (lambda data: (data or b"") + b"\n")

    def write_if_version(
        self,
        path: str,
        data: bytes,
        expected_version: str | None,
        message: str,
    ) -> str:
        if self.races > 0:
            self.races -= 1
            self.put(path, self.interfere(self.get(path)))
        return super().write_if_version(path, data, expected_version, message)


class AlwaysConflictStore(MemoryContentStore):
    """Memory store that rejects every write as stale."""

    def write_if_version(
        self,
        path: str,
        data: bytes,
        expected_version: str | None,
        message: str,
    ) -> str:
        self.write_calls += 1
        msg = f"File {path} changed"
        raise VersionConflictError(msg)


@pytest.fixture
def sleeps() -> list[float]:
    """Collects the delays a retry loop asked to sleep for."""
    return []


@pytest.fixture
def store() -> MemoryContentStore:
    """Empty in-memory content store."""
    return MemoryContentStore()


@pytest.fixture
def action_log() -> RecordingActionLog:
    """In-memory action log sink."""
    return RecordingActionLog()


@pytest.fixture
def make_service(
    sleeps: list[float],
    action_log: RecordingActionLog,
) -> Callable[..., IssueService]:
    """Factory for services with a fake clock and sleep-free retries."""

    def factory(store: MemoryContentStore, **kwargs: Any) -> IssueService:
        kwargs.setdefault("policy", RetryPolicy(max_retries=3))
        kwargs.setdefault("sleep", sleeps.append)
        kwargs.setdefault("clock", FakeClock())
        kwargs.setdefault("action_log", action_log)
        return IssueService(store, **kwargs)

    return factory


@pytest.fixture
def service(
    store: MemoryContentStore,
    make_service: Callable[..., IssueService],
) -> IssueService:
    """Service over the empty ``store`` fixture."""
    return make_service(store)
