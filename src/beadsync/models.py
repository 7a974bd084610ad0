"""Data models for beadsync issues using dataclasses."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from beadsync.constants import (
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
)

logger = logging.getLogger(__name__)


class Status(str, Enum):
    """Issue status enumeration."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class IssueType(str, Enum):
    """Issue type enumeration."""

    BUG = "bug"
    FEATURE = "feature"
    TASK = "task"
    EPIC = "epic"


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class Comment:
    """A comment on an issue."""

    id: int
    issue_id: str
    author: str
    text: str
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Issue:
    """An issue in the tracking system."""

    id: str
    title: str
    description: str | None = None
    status: Status = Status.OPEN
    priority: int = DEFAULT_PRIORITY  # 1-5 range, lower is more urgent
    issue_type: IssueType = IssueType.TASK
    assignee: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None
    closed_at: datetime | None = None
    parent: str | None = None
    comments: list[Comment] = field(default_factory=list[Comment])
    # Keys found in the file that this model does not know; written back as-is
    extra: dict[str, Any] = field(default_factory=dict[str, Any])

    def is_closed(self) -> bool:
        """Check if the issue is closed."""
        return self.status == Status.CLOSED

    def next_comment_id(self) -> int:
        """Return the id the next comment on this issue must take."""
        return max((c.id for c in self.comments), default=0) + 1


@dataclass(frozen=True)
class Tombstone:
    """A logical deletion recorded in the deletions log."""

    id: str
    deleted_at: datetime


# Keys consumed by normalize_issue(); everything else lands in Issue.extra
_KNOWN_KEYS = frozenset(
    {
        "id",
        "title",
        "description",
        "status",
        "priority",
        "issue_type",
        "type",
        "assignee",
        "created_at",
        "created",
        "updated_at",
        "closed_at",
        "parent",
        "comments",
    },
)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None for anything unusable."""
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def normalize_status(value: Any) -> Status:
    """Coerce a loosely-typed status value, defaulting to open."""
    text = str(value or "").strip().lower().replace("-", "_")
    try:
        return Status(text)
    except ValueError:
        return Status.OPEN


def normalize_issue_type(value: Any) -> IssueType:
    """Coerce a loosely-typed issue type value, defaulting to task."""
    text = str(value or "").strip().lower()
    try:
        return IssueType(text)
    except ValueError:
        return IssueType.TASK


def normalize_priority(value: Any) -> int:
    """Coerce a priority to an int in range, defaulting to 3."""
    if isinstance(value, bool):
        return DEFAULT_PRIORITY
    try:
        priority = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PRIORITY
    if priority < MIN_PRIORITY or priority > MAX_PRIORITY:
        return DEFAULT_PRIORITY
    return priority


def _optional_str(value: Any) -> str | None:
    """Return ``str(value)``, or None for missing and empty values."""
    if value is None or value == "":
        return None
    return str(value)


def _normalize_comments(issue_id: str, raw: Any) -> list[Comment]:
    """Normalize a raw comment list, skipping entries without a numeric id."""
    if not isinstance(raw, list):
        return []
    comments: list[Comment] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            comment_id = int(entry.get("id"))
        except (TypeError, ValueError):
            logger.warning(
                "Skipping comment with non-numeric id %r on %s",
                entry.get("id"),
                issue_id,
            )
            continue
        comments.append(
            Comment(
                id=comment_id,
                issue_id=str(entry.get("issue_id") or issue_id),
                author=str(entry.get("author") or ""),
                text=str(entry.get("text") or ""),
                created_at=parse_timestamp(entry.get("created_at")) or utc_now(),
            ),
        )
    return comments


def normalize_issue(raw: dict[str, Any]) -> Issue:
    """Build an Issue from an externally-authored dict.

    The file is written by many tools and by hand, so nothing about its
    shape is trusted: every field is coerced and defaulted.

    Args:
        raw: A decoded JSON object (or markdown front matter).

    Returns:
        The normalized issue.
    """
    issue_id = str(raw.get("id") or "")
    return Issue(
        id=issue_id,
        title=str(raw.get("title") or ""),
        description=_optional_str(raw.get("description")),
        status=normalize_status(raw.get("status")),
        priority=normalize_priority(raw.get("priority")),
        issue_type=normalize_issue_type(raw.get("issue_type") or raw.get("type")),
        assignee=_optional_str(raw.get("assignee")),
        created_at=(
            parse_timestamp(raw.get("created_at") or raw.get("created")) or utc_now()
        ),
        updated_at=parse_timestamp(raw.get("updated_at")),
        closed_at=parse_timestamp(raw.get("closed_at")),
        parent=_optional_str(raw.get("parent")),
        comments=_normalize_comments(issue_id, raw.get("comments")),
        extra={k: v for k, v in raw.items() if k not in _KNOWN_KEYS},
    )


def comment_to_dict(comment: Comment) -> dict[str, Any]:
    """Convert a Comment to a dictionary, serializing datetimes."""
    return {
        "id": comment.id,
        "issue_id": comment.issue_id,
        "author": comment.author,
        "text": comment.text,
        "created_at": comment.created_at.isoformat(),
    }


def issue_to_dict(issue: Issue) -> dict[str, Any]:
    """Convert an Issue to a dictionary, serializing datetimes.

    Optional text fields are written as empty strings, which is what other
    tools reading the same file expect.
    """
    data: dict[str, Any] = {
        "id": issue.id,
        "title": issue.title,
        "description": issue.description or "",
        "status": issue.status.value,
        "priority": issue.priority,
        "issue_type": issue.issue_type.value,
        "assignee": issue.assignee or "",
        "created_at": issue.created_at.isoformat(),
    }
    if issue.updated_at is not None:
        data["updated_at"] = issue.updated_at.isoformat()
    if issue.closed_at is not None:
        data["closed_at"] = issue.closed_at.isoformat()
    if issue.parent:
        data["parent"] = issue.parent
    if issue.comments:
        data["comments"] = [comment_to_dict(c) for c in issue.comments]
    for key, value in issue.extra.items():
        data.setdefault(key, value)
    return data


def tombstone_to_dict(tombstone: Tombstone) -> dict[str, Any]:
    """Convert a Tombstone to a dictionary."""
    return {"id": tombstone.id, "deleted_at": tombstone.deleted_at.isoformat()}


def editable_value(issue: Issue, field_name: str) -> Any:
    """Return a field value in its plain JSON form (enums unwrapped)."""
    value = getattr(issue, field_name)
    if isinstance(value, Enum):
        return value.value
    return value
