"""Delete command for the beadsync CLI."""

from __future__ import annotations

import typer

from ._helpers import get_default_operator, get_service, handle_errors
from ._json_state import echo_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register the delete command."""

    @app.command()
    def delete(
        issue_id: str = typer.Argument(..., help="Issue ID"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """Delete an issue (recorded in the deletions log)."""
        with handle_errors():
            result = get_service().delete_issue(issue_id, actor=get_default_operator())

        if is_json_output(json_output):
            echo_json({"success": True, "written": result.written})
        elif result.written:
            typer.echo(f"✓ Deleted {issue_id}")
        else:
            typer.echo(f"{issue_id} was already deleted")
