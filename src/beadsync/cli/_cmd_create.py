"""Create command for the beadsync CLI."""

from __future__ import annotations

from typing import Any

import typer

from beadsync.models import issue_to_dict

from ._formatting import format_issue_brief
from ._helpers import get_default_operator, get_service, handle_errors
from ._json_state import echo_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register the create command."""

    @app.command()
    def create(
        title: str = typer.Argument(..., help="Issue title"),
        description: str | None = typer.Option(
            None,
            "--description",
            "-d",
            help="Issue description",
        ),
        priority: int | None = typer.Option(
            None,
            "--priority",
            "-p",
            help="Priority (1 = highest, 5 = lowest)",
        ),
        issue_type: str | None = typer.Option(
            None,
            "--type",
            "-t",
            help="Issue type (bug, feature, task, epic)",
        ),
        status: str | None = typer.Option(None, "--status", "-s", help="Status"),
        assignee: str | None = typer.Option(None, "--assignee", "-a", help="Assignee"),
        parent: str | None = typer.Option(None, "--parent", help="Parent issue ID"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """Create a new issue."""
        fields: dict[str, Any] = {"title": title}
        for key, value in (
            ("description", description),
            ("priority", priority),
            ("issue_type", issue_type),
            ("status", status),
            ("assignee", assignee),
            ("parent", parent),
        ):
            if value is not None:
                fields[key] = value

        with handle_errors():
            service = get_service()
            result = service.create_issue(fields, actor=get_default_operator())

        if is_json_output(json_output):
            echo_json(issue_to_dict(result.issue))
        else:
            typer.echo(f"✓ Created {format_issue_brief(result.issue)}")
