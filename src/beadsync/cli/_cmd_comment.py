"""Comment command for the beadsync CLI."""

from __future__ import annotations

import typer

from beadsync.models import comment_to_dict

from ._helpers import get_default_operator, get_service, handle_errors
from ._json_state import echo_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register the comment command."""

    @app.command()
    def comment(
        issue_id: str = typer.Argument(..., help="Issue ID"),
        text: str = typer.Argument(..., help="Comment text"),
        author: str | None = typer.Option(None, "--by", help="Comment author name"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """Add a comment to an issue."""
        with handle_errors():
            result = get_service().add_comment(
                issue_id,
                text,
                author=author or get_default_operator(),
            )

        if is_json_output(json_output):
            echo_json(comment_to_dict(result.comment))
        else:
            typer.echo(f"✓ Added comment {result.comment.id} to {issue_id}")
