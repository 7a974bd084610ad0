"""Action log: one record per mutation for debugging user operations.

Reporting is fire-and-forget.  A failing sink is logged locally and never
changes the outcome of the mutation being reported.
"""

from __future__ import annotations

import fcntl
import logging
import secrets
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import orjson

from beadsync.constants import PAYLOAD_MAX_DEPTH, PAYLOAD_MAX_STRING, SENSITIVE_FIELDS

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass
class ActionLogEntry:
    """A single mutation attempt as reported to the action log."""

    action: str  # "create_issue", "update_issue", "delete_issue", ...
    success: bool
    repo_owner: str | None = None
    repo_name: str | None = None
    issue_id: str | None = None
    actor: str | None = None
    request_payload: Any = None
    error_message: str | None = None
    retry_count: int = 0
    conflict_detected: bool = False
    duration_ms: int | None = None
    request_id: str | None = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
    )


class ActionLogSink(Protocol):
    """Destination for action log entries."""

    def append(self, entry: ActionLogEntry) -> None:
        """Record one entry."""
        ...


def redact_sensitive_fields(obj: Any, depth: int = 0) -> Any:
    """Replace the values of sensitive-looking keys with ``[REDACTED]``."""
    if depth > PAYLOAD_MAX_DEPTH:
        return "[MAX_DEPTH]"
    if isinstance(obj, list):
        return [redact_sensitive_fields(item, depth + 1) for item in obj]
    if not isinstance(obj, dict):
        return obj

    result: dict[str, Any] = {}
    for key, value in obj.items():
        lower_key = str(key).lower()
        if any(name in lower_key for name in SENSITIVE_FIELDS):
            result[key] = "[REDACTED]"
        else:
            result[key] = redact_sensitive_fields(value, depth + 1)
    return result


def truncate_long_fields(obj: Any, max_length: int = PAYLOAD_MAX_STRING) -> Any:
    """Truncate long strings anywhere inside ``obj``."""
    if isinstance(obj, str):
        if len(obj) > max_length:
            return obj[:max_length] + "...[TRUNCATED]"
        return obj
    if isinstance(obj, list):
        return [truncate_long_fields(item, max_length) for item in obj]
    if isinstance(obj, dict):
        return {k: truncate_long_fields(v, max_length) for k, v in obj.items()}
    return obj


def sanitize_payload(payload: Any) -> Any:
    """Redact sensitive data and truncate long strings for logging."""
    if payload is None:
        return None
    return truncate_long_fields(redact_sensitive_fields(payload))


class JSONLActionLog:
    """Append-only action log stored as JSONL on the local filesystem."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock_path = self.path.parent / f".{self.path.name}.lock"

    def append(self, entry: ActionLogEntry) -> None:
        """Append a single entry, sanitizing its payload."""
        data = asdict(entry)
        data["request_payload"] = sanitize_payload(entry.request_payload)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock_path.open("w") as lock_fd:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
            try:
                with self.path.open("ab") as f:
                    f.write(orjson.dumps(data, default=str))
                    f.write(b"\n")
                    f.flush()
            finally:
                fcntl.flock(lock_fd, fcntl.LOCK_UN)

    def read(self, *, limit: int | None = None) -> list[dict[str, Any]]:
        """Read entries newest first, skipping malformed lines."""
        if not self.path.exists():
            return []
        entries: list[dict[str, Any]] = []
        for line in self.path.read_bytes().splitlines():
            if not line.strip():
                continue
            try:
                entries.append(orjson.loads(line))
            except orjson.JSONDecodeError:
                continue
        entries.reverse()
        return entries[:limit] if limit is not None else entries


def log_action(sink: ActionLogSink | None, entry: ActionLogEntry) -> None:
    """Report an entry to ``sink``; failures are logged and swallowed."""
    if sink is None:
        return
    try:
        sink.append(entry)
    except Exception:
        logger.warning(
            "Failed to log action %s for %s",
            entry.action,
            entry.issue_id,
            exc_info=True,
        )


def start_timer() -> Callable[[], int]:
    """Return a callable giving the milliseconds elapsed since this call."""
    start = time.monotonic()
    return lambda: int((time.monotonic() - start) * 1000)


def generate_request_id() -> str:
    """Generate a short request id for correlating log entries."""
    return f"{int(time.time() * 1000):x}-{secrets.token_hex(3)}"
