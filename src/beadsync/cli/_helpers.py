"""Shared infrastructure for beadsync CLI commands."""

from __future__ import annotations

import functools
import getpass
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from typer.core import TyperGroup

from beadsync.config import build_service, load_settings
from beadsync.errors import BeadsyncError, MergeConflictError

from ._json_state import echo_error, is_json_output

if TYPE_CHECKING:
    from collections.abc import Iterator

    import click

    from beadsync.config import Settings
    from beadsync.operations import IssueService

# Exit code for a merge conflict, distinct from generic failures
EXIT_CONFLICT = 2


class SortedGroup(TyperGroup):
    """Typer group that lists commands in alphabetical order."""

    def list_commands(self, ctx: click.Context) -> list[str]:
        """Return commands sorted alphabetically."""
        return sorted(super().list_commands(ctx))


@functools.lru_cache(maxsize=1)
def get_default_operator() -> str:
    """Get the default actor for issue operations.

    Tries to get the git config user.email first, falls back to machine username.
    """
    try:
        result = subprocess.run(
            ["git", "config", "user.email"],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (FileNotFoundError, OSError):
        pass

    return getpass.getuser()


def get_settings(project_dir: str | None = None) -> Settings:
    """Load settings for the project containing ``project_dir`` (default: cwd)."""
    return load_settings(Path(project_dir) if project_dir else None)


def get_service(project_dir: str | None = None) -> IssueService:
    """Build the issue service for the current project."""
    return build_service(get_settings(project_dir))


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn beadsync errors into an error message and a non-zero exit."""
    try:
        yield
    except typer.Exit:
        raise
    except MergeConflictError as e:
        from ._formatting import format_conflicts

        echo_error(e.message, merge_result=e.merge_result.to_dict())
        if not is_json_output():
            typer.echo(format_conflicts(e.merge_result), err=True)
        raise typer.Exit(EXIT_CONFLICT) from None
    except BeadsyncError as e:
        echo_error(e.message)
        raise typer.Exit(1) from None
