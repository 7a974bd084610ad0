"""Tests for the three-way field merge."""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

from beadsync.merge import MergeStatus, three_way_merge, values_equal
from beadsync.models import Issue, IssueType, Status

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2026, 1, 2, tzinfo=timezone.utc)


def _issue(**kwargs: object) -> Issue:
    defaults: dict[str, object] = {
        "id": "bd-1",
        "title": "Original",
        "description": "Desc",
        "status": Status.OPEN,
        "priority": 3,
        "issue_type": IssueType.TASK,
        "assignee": None,
        "created_at": T0,
        "updated_at": T0,
    }
    defaults.update(kwargs)
    return Issue(**defaults)  # type: ignore[arg-type]


class TestValuesEqual:
    """Test field value comparison."""

    def test_none_and_empty_string_are_equal(self) -> None:
        """Normalization round trips None through "" so they must compare equal."""
        assert values_equal(None, "")
        assert values_equal("", None)

    def test_enum_and_string(self) -> None:
        """Enums compare equal to their values."""
        assert values_equal(Status.CLOSED, "closed")
        assert not values_equal(Status.OPEN, "closed")


class TestNoBase:
    """Without a base snapshot the update is last-write-wins."""

    def test_applies_all_local_fields(self) -> None:
        """Every touched field is applied over remote."""
        remote = _issue(title="Changed remotely")
        result = three_way_merge(None, {"title": "Mine", "priority": 1}, remote)
        assert result.status == MergeStatus.SUCCESS
        assert result.merged_issue.title == "Mine"
        assert result.merged_issue.priority == 1
        assert result.remote_issue is None


class TestThreeWay:
    """Test the per-field merge rules."""

    def test_no_false_conflict_when_remote_unchanged(self) -> None:
        """base == remote never conflicts and applies local."""
        base = _issue()
        result = three_way_merge(
            base,
            {"title": "New", "status": Status.CLOSED},
            dataclasses.replace(base),
        )
        assert result.status == MergeStatus.SUCCESS
        assert result.merged_issue.title == "New"
        assert result.merged_issue.status == Status.CLOSED
        assert result.conflicts == []

    def test_conflict_precision(self) -> None:
        """Only fields changed differently on both sides conflict."""
        base = _issue()
        remote = _issue(title="Theirs", priority=1, updated_at=T1)
        local = {"title": "Mine", "priority": 1, "description": "Local desc"}

        result = three_way_merge(base, local, remote)

        assert result.status == MergeStatus.CONFLICT
        assert [c.field for c in result.conflicts] == ["title"]
        conflict = result.conflicts[0]
        assert conflict.base_value == "Original"
        assert conflict.local_value == "Mine"
        assert conflict.remote_value == "Theirs"
        assert conflict.remote_updated_at == T1.isoformat()
        # Convergent and one-sided edits still show in the partial merge
        assert result.merged_issue.priority == 1
        assert result.merged_issue.description == "Local desc"
        assert result.merged_issue.title == "Theirs"
        assert result.remote_issue == remote

    def test_auto_merge_keeps_remote_value(self) -> None:
        """A field only remote changed keeps the remote value and is reported."""
        base = _issue()
        remote = _issue(assignee="bo")
        # The local copy still carries the base assignee
        result = three_way_merge(base, {"assignee": None, "title": "Mine"}, remote)
        assert result.status == MergeStatus.AUTO_MERGED
        assert result.auto_merged_fields == ["assignee"]
        assert result.merged_issue.assignee == "bo"
        assert result.merged_issue.title == "Mine"
        assert result.remote_issue == remote

    def test_convergent_edit_is_success(self) -> None:
        """Both sides making the same change is not a conflict."""
        base = _issue()
        remote = _issue(status=Status.CLOSED)
        result = three_way_merge(base, {"status": Status.CLOSED}, remote)
        assert result.status == MergeStatus.SUCCESS
        assert result.merged_issue.status == Status.CLOSED

    def test_untouched_fields_are_ignored(self) -> None:
        """Remote edits to fields local did not send never conflict."""
        base = _issue()
        remote = _issue(title="Theirs", description="Their desc")
        result = three_way_merge(base, {"priority": 2}, remote)
        assert result.status == MergeStatus.SUCCESS
        assert result.merged_issue.title == "Theirs"
        assert result.merged_issue.priority == 2

    def test_empty_and_none_do_not_conflict(self) -> None:
        """Clearing a field that remote wrote back as "" is not a change."""
        base = _issue(assignee=None)
        remote = _issue(assignee="")
        result = three_way_merge(base, {"assignee": "ana"}, remote)
        assert result.status == MergeStatus.SUCCESS
        assert result.merged_issue.assignee == "ana"

    def test_deterministic(self) -> None:
        """Equal inputs give equal results and inputs are not modified."""
        base = _issue()
        remote = _issue(title="Theirs", priority=5)
        local = {"title": "Mine", "priority": 5, "assignee": "x"}
        before = dataclasses.replace(remote)

        first = three_way_merge(base, dict(local), remote)
        second = three_way_merge(base, dict(local), remote)

        assert first.to_dict() == second.to_dict()
        assert remote == before
