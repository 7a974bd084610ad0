"""Update and bulk update commands for the beadsync CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson
import typer

from beadsync.merge import MergeStatus

from ._formatting import format_issue_brief
from ._helpers import get_default_operator, get_service, handle_errors
from ._json_state import echo_error, echo_json, is_json_output


def _load_base(base_file: str) -> dict[str, Any]:
    """Read a base snapshot: a bare issue object or ``{"issue": {...}}``."""
    try:
        data = orjson.loads(Path(base_file).read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        echo_error(f"Cannot read base file {base_file}: {e}")
        raise typer.Exit(1) from None
    if isinstance(data, dict) and isinstance(data.get("issue"), dict):
        data = data["issue"]
    if not isinstance(data, dict):
        echo_error(f"Base file {base_file} must contain a JSON object")
        raise typer.Exit(1)
    return data


def register(app: typer.Typer) -> None:
    """Register update and bulk commands."""

    @app.command()
    def update(
        issue_id: str = typer.Argument(..., help="Issue ID"),
        title: str | None = typer.Option(None, "--title", help="New title"),
        description: str | None = typer.Option(
            None,
            "--description",
            "-d",
            help="New description",
        ),
        status: str | None = typer.Option(
            None,
            "--status",
            "-s",
            help="New status (open, in_progress, closed)",
        ),
        priority: int | None = typer.Option(
            None,
            "--priority",
            "-p",
            help="New priority (1-5)",
        ),
        issue_type: str | None = typer.Option(
            None,
            "--type",
            "-t",
            help="New issue type (bug, feature, task, epic)",
        ),
        assignee: str | None = typer.Option(None, "--assignee", "-a"),
        base_file: str | None = typer.Option(
            None,
            "--base-file",
            help="JSON snapshot of the issue your edit is based on; "
            "enables three-way merge with concurrent edits",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """Update an issue."""
        updates: dict[str, Any] = {}
        for key, value in (
            ("title", title),
            ("description", description),
            ("status", status),
            ("priority", priority),
            ("issue_type", issue_type),
            ("assignee", assignee),
        ):
            if value is not None:
                updates[key] = value
        if not updates:
            echo_error("No updates given")
            raise typer.Exit(1)
        base = _load_base(base_file) if base_file else None

        with handle_errors():
            result = get_service().update_issue(
                issue_id,
                updates,
                base=base,
                actor=get_default_operator(),
            )

        if is_json_output(json_output):
            echo_json(
                {
                    "success": True,
                    "merge_result": result.merge_result.to_dict(),
                    "retry_count": result.retry_count,
                },
            )
            return

        typer.echo(f"✓ Updated {format_issue_brief(result.issue)}")
        if result.merge_result.status == MergeStatus.AUTO_MERGED:
            fields = ", ".join(result.merge_result.auto_merged_fields)
            typer.echo(f"  Kept concurrent changes to: {fields}")
        if result.retry_count:
            typer.echo(f"  Retried {result.retry_count} time(s)")

    @app.command()
    def bulk(
        issue_ids: list[str] = typer.Argument(..., help="Issue IDs"),  # noqa: B008
        status: str | None = typer.Option(None, "--status", "-s", help="New status"),
        priority: int | None = typer.Option(
            None,
            "--priority",
            "-p",
            help="New priority (1-5)",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """Set status and/or priority on several issues in one write."""
        updates: dict[str, Any] = {}
        if status is not None:
            updates["status"] = status
        if priority is not None:
            updates["priority"] = priority

        with handle_errors():
            result = get_service().bulk_update(
                issue_ids,
                updates,
                actor=get_default_operator(),
            )

        if is_json_output(json_output):
            echo_json({"success": True, "updated": result.updated})
        else:
            typer.echo(f"✓ Updated {result.updated} issue(s)")
