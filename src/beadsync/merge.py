"""Field-level three-way merge for a single issue.

Reconciles a caller's partial update (local) made against an earlier
snapshot (base) with the issue as it is stored now (remote).  Unlike a
last-write-wins merge this keeps edits from both sides whenever they touch
different fields, and reports true conflicts instead of resolving them.

Only the fields in ``EDITABLE_FIELDS`` take part.  Fields the caller did not
send always keep the remote value and are not reported anywhere.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from beadsync.constants import EDITABLE_FIELDS
from beadsync.models import editable_value, issue_to_dict

if TYPE_CHECKING:
    from collections.abc import Mapping

    from beadsync.models import Issue


class MergeStatus(str, Enum):
    """Outcome classification of a three-way merge."""

    SUCCESS = "success"
    AUTO_MERGED = "auto_merged"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class FieldConflict:
    """Both sides changed one field to different values."""

    field: str
    base_value: Any
    local_value: Any
    remote_value: Any
    remote_updated_at: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "field": self.field,
            "base_value": self.base_value,
            "local_value": self.local_value,
            "remote_value": self.remote_value,
            "remote_updated_at": self.remote_updated_at,
        }


@dataclass
class MergeResult:
    """Result of a three-way merge.

    ``merged_issue`` is always populated.  For a conflict it is a partial
    merge of the non-conflicting fields, meant for display only: it must
    never be written.
    """

    status: MergeStatus
    merged_issue: Issue
    auto_merged_fields: list[str] = dataclasses.field(default_factory=list[str])
    conflicts: list[FieldConflict] = dataclasses.field(
        default_factory=list[FieldConflict],
    )
    remote_issue: Issue | None = None

    @property
    def is_conflict(self) -> bool:
        """Check whether the result must not be committed."""
        return self.status == MergeStatus.CONFLICT

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        data: dict[str, Any] = {
            "status": self.status.value,
            "merged_issue": issue_to_dict(self.merged_issue),
            "auto_merged_fields": list(self.auto_merged_fields),
            "conflicts": [c.to_dict() for c in self.conflicts],
        }
        if self.remote_issue is not None:
            data["remote_issue"] = issue_to_dict(self.remote_issue)
        return data


def _plain(value: Any) -> Any:
    """Unwrap enums so values compare and serialize as plain JSON."""
    if isinstance(value, Enum):
        return value.value
    return value


def values_equal(a: Any, b: Any) -> bool:
    """Compare two field values.

    None and the empty string are treated as the same value, because
    normalization writes missing optional text as ``""`` and reads it back
    as None.
    """
    a, b = _plain(a), _plain(b)
    if a == b:
        return True
    return a in (None, "") and b in (None, "")


def three_way_merge(
    base: Issue | None,
    local: Mapping[str, Any],
    remote: Issue,
) -> MergeResult:
    """Merge a partial local update into the remote issue.

    Pure function: the inputs are not modified and equal inputs always give
    equal results.

    Args:
        base: The issue as the caller last saw it, or None to fall back to
            last-write-wins.
        local: The caller's changes, keyed by field name.  Values must be
            already validated (see ``validation.coerce_updates``).
        remote: The issue as freshly read from the store.

    Returns:
        The merge result.  Only ``SUCCESS`` and ``AUTO_MERGED`` may be
        committed.
    """
    touched = [f for f in EDITABLE_FIELDS if f in local]

    if base is None:
        merged = dataclasses.replace(remote, **{f: local[f] for f in touched})
        return MergeResult(status=MergeStatus.SUCCESS, merged_issue=merged)

    applied: dict[str, Any] = {}
    auto_merged: list[str] = []
    conflicts: list[FieldConflict] = []

    for field_name in touched:
        base_value = editable_value(base, field_name)
        local_value = local[field_name]
        remote_value = editable_value(remote, field_name)

        remote_changed = not values_equal(base_value, remote_value)
        local_changed = not values_equal(base_value, local_value)

        if not remote_changed:
            applied[field_name] = local_value
        elif not local_changed:
            auto_merged.append(field_name)
        elif values_equal(local_value, remote_value):
            applied[field_name] = local_value
        else:
            conflicts.append(
                FieldConflict(
                    field=field_name,
                    base_value=base_value,
                    local_value=_plain(local_value),
                    remote_value=remote_value,
                    remote_updated_at=(
                        remote.updated_at.isoformat() if remote.updated_at else ""
                    ),
                ),
            )

    merged = dataclasses.replace(remote, **applied)

    if conflicts:
        return MergeResult(
            status=MergeStatus.CONFLICT,
            merged_issue=merged,
            auto_merged_fields=auto_merged,
            conflicts=conflicts,
            remote_issue=remote,
        )
    if auto_merged:
        return MergeResult(
            status=MergeStatus.AUTO_MERGED,
            merged_issue=merged,
            auto_merged_fields=auto_merged,
            remote_issue=remote,
        )
    return MergeResult(status=MergeStatus.SUCCESS, merged_issue=merged)
