"""Display and formatting functions for the beadsync CLI."""

from __future__ import annotations

from io import StringIO
from typing import TYPE_CHECKING

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from beadsync.constants import PRIORITY_COLORS, STATUS_COLORS, TYPE_COLORS

if TYPE_CHECKING:
    from beadsync.merge import MergeResult
    from beadsync.models import Issue

STATUS_SYMBOLS = {
    "open": "●",
    "in_progress": "◐",
    "closed": "✓",
}


def _render(table: Table) -> str:
    string_io = StringIO()
    console = Console(file=string_io, force_terminal=False, width=120)
    console.print(table)
    return string_io.getvalue().rstrip("\n")


def format_issue_brief(issue: Issue) -> str:
    """Format an issue as one colored line: status, priority, id, title, type."""
    status = issue.status.value
    status_str = typer.style(
        STATUS_SYMBOLS.get(status, "?"),
        fg=STATUS_COLORS.get(status, "white"),
    )
    priority_str = typer.style(
        f"[{issue.priority}]",
        fg=PRIORITY_COLORS.get(issue.priority, "white"),
        bold=True,
    )
    issue_type = issue.issue_type.value
    type_str = typer.style(f"[{issue_type}]", fg=TYPE_COLORS.get(issue_type, "white"))
    return f"{status_str} {priority_str} {issue.id}: {issue.title} {type_str}"


def format_issue_table(issues: list[Issue]) -> str:
    """Format issues as a Rich table.

    Returns:
        The rendered table, or an empty string for no issues.
    """
    if not issues:
        return ""

    table = Table(
        show_header=True,
        header_style="bold",
        box=box.ROUNDED,
        pad_edge=False,
        show_edge=False,
    )
    table.add_column("", width=2, no_wrap=True)
    table.add_column("ID", no_wrap=True)
    table.add_column("Type", no_wrap=True)
    table.add_column("Pri", width=3, no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Title", overflow="fold")
    table.add_column("Assignee", no_wrap=True)

    for issue in issues:
        status = issue.status.value
        issue_type = issue.issue_type.value
        priority_color = f"bold {PRIORITY_COLORS.get(issue.priority, 'white')}"
        table.add_row(
            STATUS_SYMBOLS.get(status, "?"),
            issue.id,
            f"[{TYPE_COLORS.get(issue_type, 'white')}]{issue_type}[/]",
            f"[{priority_color}]{issue.priority}[/]",
            f"[{STATUS_COLORS.get(status, 'white')}]{status}[/]",
            escape(issue.title),
            escape(issue.assignee or ""),
        )
    return _render(table)


def format_issue_full(issue: Issue) -> str:
    """Format an issue with all of its fields and comments."""
    lines = [
        typer.style(f"{issue.id}: {issue.title}", bold=True),
        "",
        f"Status:   {issue.status.value}",
        f"Priority: {issue.priority}",
        f"Type:     {issue.issue_type.value}",
    ]
    if issue.assignee:
        lines.append(f"Assignee: {issue.assignee}")
    if issue.parent:
        lines.append(f"Parent:   {issue.parent}")
    lines.append(f"Created:  {issue.created_at.isoformat()}")
    if issue.updated_at:
        lines.append(f"Updated:  {issue.updated_at.isoformat()}")
    if issue.closed_at:
        lines.append(f"Closed:   {issue.closed_at.isoformat()}")
    if issue.description:
        lines.extend(["", issue.description])
    if issue.comments:
        lines.extend(["", "Comments:"])
        for comment in issue.comments:
            ts = comment.created_at.isoformat()
            lines.append(f"  [{comment.id}] {comment.author} ({ts})")
            lines.append(f"    {comment.text}")
    return "\n".join(lines)


def format_conflicts(result: MergeResult) -> str:
    """Format the conflicting fields of a merge as a table."""
    table = Table(
        title="Merge conflicts",
        show_header=True,
        header_style="bold",
        box=box.ROUNDED,
    )
    table.add_column("Field", no_wrap=True)
    table.add_column("Base")
    table.add_column("Yours")
    table.add_column("Theirs")
    for conflict in result.conflicts:
        table.add_row(
            conflict.field,
            escape(str(conflict.base_value)),
            f"[yellow]{escape(str(conflict.local_value))}[/]",
            f"[cyan]{escape(str(conflict.remote_value))}[/]",
        )
    return _render(table)
