"""Global JSON output state for the beadsync CLI."""

from __future__ import annotations

import sys
from typing import Any

import orjson
import typer

_global_json: bool = False


def set_json_flag(value: bool) -> None:
    """Set the global JSON output flag."""
    global _global_json  # noqa: PLW0603
    _global_json = value


def is_json_output(local_flag: bool = False) -> bool:
    """Check if JSON output is enabled (global or local flag).

    A per-command ``--json`` also switches ``echo_error`` to JSON.
    """
    global _global_json  # noqa: PLW0603
    if local_flag and not _global_json:
        _global_json = True
    return local_flag or _global_json


def echo_json(data: Any) -> None:
    """Write ``data`` to stdout as indented JSON."""
    typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2, default=str).decode())


def echo_error(message: str, **details: Any) -> None:
    """Output an error message to stderr, as JSON in JSON mode.

    Extra ``details`` are only included in JSON output.
    """
    if _global_json:
        payload = {"error": message, **details}
        sys.stderr.write(orjson.dumps(payload, default=str).decode() + "\n")
    else:
        typer.echo(f"Error: {message}", err=True)
