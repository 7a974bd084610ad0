"""Tests for the markdown issue layout codec."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from beadsync.markdown import (
    markdown_path,
    parse_markdown_issue,
    serialize_markdown_issue,
)
from beadsync.models import Issue, IssueType, Status

SAMPLE = """---
id: bd-7
title: "Fix \\"login\\" page"
type: bug
status: in-progress
priority: 2
created: 2026-01-05T10:00:00Z
assignee: ana
---

# Fix "login" page

The button is misaligned.

Second paragraph.
"""


class TestParse:
    """Test reading markdown issues."""

    def test_front_matter_and_body(self) -> None:
        """Front matter fields map to the issue and the body to its description."""
        issue = parse_markdown_issue(SAMPLE)
        assert issue.id == "bd-7"
        assert issue.title == 'Fix "login" page'
        assert issue.issue_type == IssueType.BUG
        assert issue.status == Status.IN_PROGRESS
        assert issue.priority == 2
        assert issue.assignee == "ana"
        assert issue.description == "The button is misaligned.\n\nSecond paragraph."

    def test_missing_front_matter(self) -> None:
        """A document without front matter is rejected."""
        with pytest.raises(ValueError, match="front matter"):
            parse_markdown_issue("# Just a heading\n")

    def test_unknown_keys_kept(self) -> None:
        """Unknown front matter keys are preserved in extra, YAML-typed."""
        issue = parse_markdown_issue("---\nid: a\ntitle: t\nsprint: 4\n---\n")
        assert issue.extra == {"sprint": 4}

    def test_front_matter_must_be_mapping(self) -> None:
        """A YAML list or broken YAML in the header is rejected."""
        with pytest.raises(ValueError, match="mapping"):
            parse_markdown_issue("---\n- a\n- b\n---\n")
        with pytest.raises(ValueError, match="front matter"):
            parse_markdown_issue("---\ntitle: [unclosed\n---\n")

    def test_delimiter_must_be_own_line(self) -> None:
        """A body line starting with dashes does not close the header."""
        issue = parse_markdown_issue("---\nid: a\ntitle: t\n---\n\n# t\n\n----\n---x\n")
        assert issue.title == "t"
        assert issue.description == "----\n---x"


class TestSerialize:
    """Test writing markdown issues."""

    def test_round_trip(self) -> None:
        """Serialized issues parse back to the same fields."""
        t = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
        issue = Issue(
            id="bd-9",
            title="Quote: \"here\"",
            description="Line one\nLine two",
            status=Status.CLOSED,
            priority=4,
            issue_type=IssueType.FEATURE,
            assignee="bo",
            created_at=t,
            updated_at=t,
            closed_at=t,
            parent="bd-1",
        )
        assert parse_markdown_issue(serialize_markdown_issue(issue)) == issue

    @pytest.mark.parametrize(
        "text",
        [
            "bob\npriority: 1\nstatus: closed",
            "first\nsecond",
            'say "hi" and \'bye\'',
            "key: value",
            "--- leading dashes",
            "---",
            "# not a heading",
            "tab\there\r\nand crlf",
        ],
    )
    def test_round_trip_awkward_values(self, text: str) -> None:
        """Line breaks, quotes, colons and dashes in any field survive."""
        t = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
        issue = Issue(
            id="bd-9",
            title=text,
            description='--- opening rule\n---\nsay "hi": yes\n\nlast',
            priority=4,
            assignee=text,
            created_at=t,
            updated_at=t,
            parent="bd-1",
            extra={"sprint": text, "labels": [text, "x"], "points": 3},
        )
        assert parse_markdown_issue(serialize_markdown_issue(issue)) == issue

    def test_injected_lines_stay_in_their_field(self) -> None:
        """A multi-line assignee does not override other front matter keys."""
        t = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
        issue = Issue(
            id="bd-9",
            title="T",
            priority=4,
            assignee="bob\npriority: 1\nstatus: closed",
            created_at=t,
        )
        parsed = parse_markdown_issue(serialize_markdown_issue(issue))
        assert parsed.priority == 4
        assert parsed.status == Status.OPEN
        assert parsed.assignee == "bob\npriority: 1\nstatus: closed"

    def test_markdown_path(self) -> None:
        """Issue files are named after the id."""
        assert markdown_path(".beads/issues/", "bd-1") == ".beads/issues/bd-1.md"
