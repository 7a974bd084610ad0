"""Validation of caller-supplied input.

Everything here raises ``ValidationError`` and runs before the first
store call, so a malformed request never causes a write.
"""

from __future__ import annotations

import re
from typing import Any

from beadsync.constants import (
    BULK_FIELDS,
    BULK_IDS_MAX,
    COMMENT_TEXT_MAX,
    EDITABLE_FIELDS,
    ISSUE_DESCRIPTION_MAX,
    ISSUE_ID_MAX,
    ISSUE_TITLE_MAX,
    MAX_PRIORITY,
    MIN_PRIORITY,
    REPO_NAME_MAX,
    REPO_OWNER_MAX,
)
from beadsync.errors import ValidationError
from beadsync.models import IssueType, Status

_REPO_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")
_ISSUE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def validate_repo_owner(owner: str) -> str:
    """Validate a repository owner (GitHub user or organization name)."""
    if not owner or not isinstance(owner, str):
        msg = "Repository owner is required"
        raise ValidationError(msg)
    if len(owner) > REPO_OWNER_MAX:
        msg = f"Repository owner cannot exceed {REPO_OWNER_MAX} characters"
        raise ValidationError(msg)
    if not _REPO_NAME_PATTERN.match(owner):
        msg = "Repository owner contains invalid characters"
        raise ValidationError(msg)
    if owner.startswith("-") or owner.endswith("-"):
        msg = "Repository owner cannot start or end with a hyphen"
        raise ValidationError(msg)
    return owner


def validate_repo_name(name: str) -> str:
    """Validate a repository name, blocking path traversal."""
    if not name or not isinstance(name, str):
        msg = "Repository name is required"
        raise ValidationError(msg)
    if len(name) > REPO_NAME_MAX:
        msg = f"Repository name cannot exceed {REPO_NAME_MAX} characters"
        raise ValidationError(msg)
    if not _REPO_NAME_PATTERN.match(name) or name in (".", ".."):
        msg = "Repository name contains invalid characters"
        raise ValidationError(msg)
    return name


def validate_issue_id(issue_id: str) -> str:
    """Validate an issue id.

    Ids end up in file names for the markdown layout, so anything that
    could leave the issues directory is refused.
    """
    if not issue_id or not isinstance(issue_id, str):
        msg = "Issue ID is required"
        raise ValidationError(msg)
    if len(issue_id) > ISSUE_ID_MAX or not _ISSUE_ID_PATTERN.match(issue_id):
        msg = "Invalid issue ID format"
        raise ValidationError(msg)
    if ".." in issue_id:
        msg = "Invalid issue ID format"
        raise ValidationError(msg)
    return issue_id


def validate_title(title: Any) -> str:
    """Validate an issue title and return it stripped."""
    if not isinstance(title, str) or not title:
        msg = "Issue title is required"
        raise ValidationError(msg)
    trimmed = title.strip()
    if not trimmed:
        msg = "Issue title cannot be empty"
        raise ValidationError(msg)
    if len(trimmed) > ISSUE_TITLE_MAX:
        msg = f"Issue title cannot exceed {ISSUE_TITLE_MAX} characters"
        raise ValidationError(msg)
    return trimmed


def validate_description(description: Any) -> str | None:
    """Validate an optional issue description."""
    if description is None or description == "":
        return None
    if not isinstance(description, str):
        msg = "Issue description must be a string"
        raise ValidationError(msg)
    if len(description) > ISSUE_DESCRIPTION_MAX:
        msg = f"Issue description cannot exceed {ISSUE_DESCRIPTION_MAX} characters"
        raise ValidationError(msg)
    return description


def validate_comment_text(text: Any) -> str:
    """Validate comment text and return it stripped."""
    if not isinstance(text, str) or not text:
        msg = "Comment text is required"
        raise ValidationError(msg)
    trimmed = text.strip()
    if not trimmed:
        msg = "Comment text cannot be empty"
        raise ValidationError(msg)
    if len(trimmed) > COMMENT_TEXT_MAX:
        msg = f"Comment text cannot exceed {COMMENT_TEXT_MAX} characters"
        raise ValidationError(msg)
    return trimmed


def validate_status(value: Any) -> Status:
    """Parse a status value strictly (``in-progress`` is accepted)."""
    if isinstance(value, Status):
        return value
    if isinstance(value, str):
        try:
            return Status(value.strip().lower().replace("-", "_"))
        except ValueError:
            pass
    valid = ", ".join(s.value for s in Status)
    msg = f"Invalid status {value!r}; expected one of: {valid}"
    raise ValidationError(msg)


def validate_issue_type(value: Any) -> IssueType:
    """Parse an issue type value strictly."""
    if isinstance(value, IssueType):
        return value
    if isinstance(value, str):
        try:
            return IssueType(value.strip().lower())
        except ValueError:
            pass
    valid = ", ".join(t.value for t in IssueType)
    msg = f"Invalid issue type {value!r}; expected one of: {valid}"
    raise ValidationError(msg)


def validate_priority(value: Any) -> int:
    """Validate that priority is an integer in the valid range (1-5)."""
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"Priority must be an integer between {MIN_PRIORITY} and {MAX_PRIORITY}"
        raise ValidationError(msg)
    if value < MIN_PRIORITY or value > MAX_PRIORITY:
        msg = f"Priority must be an integer between {MIN_PRIORITY} and {MAX_PRIORITY}"
        raise ValidationError(msg)
    return value


def _optional_text(value: Any, name: str) -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        msg = f"{name} must be a string"
        raise ValidationError(msg)
    return value.strip() or None


def coerce_updates(raw: Any) -> dict[str, Any]:
    """Validate a partial update and convert it to typed field values.

    Only editable fields are kept; other keys are ignored.  ``type`` is
    accepted as an alias of ``issue_type``.

    Args:
        raw: The decoded request body (or its ``updates`` member).

    Returns:
        Field name to typed value, containing only the fields sent.
    """
    if not isinstance(raw, dict):
        msg = "Updates must be a JSON object"
        raise ValidationError(msg)

    data = dict(raw)
    if "type" in data and "issue_type" not in data:
        data["issue_type"] = data.pop("type")

    updates: dict[str, Any] = {}
    for key in EDITABLE_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key == "title":
            updates[key] = validate_title(value)
        elif key == "description":
            updates[key] = validate_description(value)
        elif key == "status":
            updates[key] = validate_status(value)
        elif key == "priority":
            updates[key] = validate_priority(value)
        elif key == "issue_type":
            updates[key] = validate_issue_type(value)
        elif key == "assignee":
            updates[key] = _optional_text(value, "Assignee")
    return updates


def coerce_new_issue(raw: Any) -> dict[str, Any]:
    """Validate the fields of an issue to be created.

    Returns:
        Typed field values; ``title`` is always present.
    """
    if not isinstance(raw, dict):
        msg = "Issue must be a JSON object"
        raise ValidationError(msg)
    if "title" not in raw:
        msg = "title is required"
        raise ValidationError(msg)
    fields = coerce_updates(raw)
    if raw.get("parent"):
        fields["parent"] = validate_issue_id(str(raw["parent"]))
    return fields


def coerce_bulk_request(ids: Any, updates: Any) -> tuple[list[str], dict[str, Any]]:
    """Validate a bulk update request.

    Returns:
        The de-duplicated ids (in request order) and the typed updates.
    """
    if not isinstance(ids, list) or not ids:
        msg = "issue_ids is required"
        raise ValidationError(msg)
    if len(ids) > BULK_IDS_MAX:
        msg = f"Cannot update more than {BULK_IDS_MAX} issues at once"
        raise ValidationError(msg)
    clean_ids = list(dict.fromkeys(validate_issue_id(str(i)) for i in ids))

    if not isinstance(updates, dict):
        msg = "updates is required"
        raise ValidationError(msg)
    typed = coerce_updates(
        {k: v for k, v in updates.items() if k in BULK_FIELDS and v is not None},
    )
    if not typed:
        msg = "At least one update field is required"
        raise ValidationError(msg)
    return clean_ids, typed
