"""Beadsync CLI commands for issues in a versioned content store."""

from __future__ import annotations

import logging

import typer

from ._helpers import SortedGroup

app = typer.Typer(
    help="bsync - concurrent-safe issue tracking in a git-hosted .beads/ directory",
    no_args_is_help=True,
    cls=SortedGroup,
)


@app.callback(invoke_without_command=True)
def _global_options(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON for all commands",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log store calls, retries and merges to stderr",
    ),
) -> None:
    from ._json_state import set_json_flag

    set_json_flag(json_output)
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
        )
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


from . import (  # noqa: E402
    _cmd_comment,
    _cmd_create,
    _cmd_delete,
    _cmd_init,
    _cmd_read,
    _cmd_update,
    _cmd_web,
)

for _mod in (
    _cmd_comment,
    _cmd_create,
    _cmd_delete,
    _cmd_init,
    _cmd_read,
    _cmd_update,
    _cmd_web,
):
    _mod.register(app)


def main() -> None:
    """Run the beadsync CLI application."""
    app()
