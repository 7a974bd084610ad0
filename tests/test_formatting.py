"""Tests for CLI output formatting."""

from __future__ import annotations

from datetime import datetime, timezone

import click

from beadsync.cli._formatting import (
    format_conflicts,
    format_issue_brief,
    format_issue_full,
    format_issue_table,
)
from beadsync.merge import FieldConflict, MergeResult, MergeStatus
from beadsync.models import Comment, Issue, Status

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _issue(**kwargs: object) -> Issue:
    values: dict[str, object] = {"id": "bd-x1", "title": "Fix [bold]it[/]", "created_at": T0}
    values.update(kwargs)
    return Issue(**values)  # type: ignore[arg-type]


class TestBrief:
    """Test the one-line format."""

    def test_contents(self) -> None:
        """The line carries symbol, priority, id, title and type."""
        line = click.unstyle(format_issue_brief(_issue(status=Status.CLOSED)))
        assert line == "✓ [3] bd-x1: Fix [bold]it[/] [task]"


class TestTable:
    """Test the Rich table."""

    def test_empty(self) -> None:
        """No issues render as an empty string."""
        assert format_issue_table([]) == ""

    def test_title_markup_is_escaped(self) -> None:
        """Titles are shown literally, not interpreted as markup."""
        out = format_issue_table([_issue(assignee="ana")])
        assert "bd-x1" in out
        assert "Fix [bold]it[/]" in out
        assert "ana" in out


class TestFull:
    """Test the detailed view."""

    def test_optional_fields_and_comments(self) -> None:
        """Assignee, parent, description and comments appear when set."""
        issue = _issue(
            assignee="ana",
            parent="bd-p",
            description="Details",
            comments=[Comment(id=1, issue_id="bd-x1", author="bo", text="ok", created_at=T0)],
        )
        out = click.unstyle(format_issue_full(issue))
        assert out.startswith("bd-x1: Fix [bold]it[/]")
        assert "Assignee: ana" in out
        assert "Parent:   bd-p" in out
        assert "Details" in out
        assert "[1] bo" in out

    def test_minimal(self) -> None:
        """Unset fields are left out."""
        out = format_issue_full(_issue())
        assert "Assignee" not in out
        assert "Comments" not in out


class TestConflicts:
    """Test the conflict table."""

    def test_lists_each_field(self) -> None:
        """Every conflicting field is shown with all three values."""
        result = MergeResult(
            status=MergeStatus.CONFLICT,
            merged_issue=_issue(),
            conflicts=[
                FieldConflict(
                    field="title",
                    base_value="Old",
                    local_value="Mine",
                    remote_value="Theirs",
                    remote_updated_at="",
                ),
            ],
        )
        out = format_conflicts(result)
        assert "Merge conflicts" in out
        for text in ("title", "Old", "Mine", "Theirs"):
            assert text in out
