"""List and show commands for the beadsync CLI."""

from __future__ import annotations

import typer

from beadsync.models import issue_to_dict
from beadsync.validation import validate_issue_type, validate_status

from ._formatting import format_issue_brief, format_issue_full, format_issue_table
from ._helpers import get_service, handle_errors
from ._json_state import echo_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register list and show commands."""

    @app.command("list")
    def list_issues(
        status: str | None = typer.Option(
            None,
            "--status",
            "-s",
            help="Only issues with this status",
        ),
        issue_type: str | None = typer.Option(
            None,
            "--type",
            "-t",
            help="Only issues of this type",
        ),
        assignee: str | None = typer.Option(None, "--assignee", "-a"),
        all_issues: bool = typer.Option(
            False,
            "--all",
            help="Include closed issues",
        ),
        table: bool = typer.Option(False, "--table", help="Show as a table"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """List issues that have not been deleted."""
        with handle_errors():
            wanted_status = validate_status(status) if status else None
            wanted_type = validate_issue_type(issue_type) if issue_type else None
            service = get_service()
            layout = service.resolve_layout()
            issues = service.list_issues(layout)

        if wanted_status is not None:
            issues = [i for i in issues if i.status == wanted_status]
        elif not all_issues:
            issues = [i for i in issues if not i.is_closed()]
        if wanted_type is not None:
            issues = [i for i in issues if i.issue_type == wanted_type]
        if assignee:
            issues = [i for i in issues if i.assignee == assignee]
        issues.sort(key=lambda i: i.priority)

        if is_json_output(json_output):
            echo_json(
                {
                    "issues": [issue_to_dict(i) for i in issues],
                    "format": layout.value,
                },
            )
        elif not issues:
            typer.echo("No issues found")
        elif table:
            typer.echo(format_issue_table(issues))
        else:
            for issue in issues:
                typer.echo(format_issue_brief(issue))

    @app.command()
    def show(
        issue_id: str = typer.Argument(..., help="Issue ID"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """Show one issue in full."""
        with handle_errors():
            issue = get_service().get_issue(issue_id)

        if is_json_output(json_output):
            echo_json(issue_to_dict(issue))
        else:
            typer.echo(format_issue_full(issue))
