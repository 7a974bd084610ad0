"""Initialization command for the beadsync CLI."""

from __future__ import annotations

from pathlib import Path

import typer

from beadsync.config import (
    BACKENDS,
    GitHubSettings,
    Settings,
    get_config_path,
    save_config,
    settings_to_dict,
)
from beadsync.constants import CONFIG_DIRNAME, DEFAULT_ID_PREFIX
from beadsync.idgen import prefix_from_repo
from beadsync.operations import Layout

from ._json_state import echo_error, echo_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register the init command."""

    @app.command()
    def init(
        backend: str = typer.Option(
            "local",
            "--backend",
            "-b",
            help="Store backend (local or github)",
        ),
        owner: str | None = typer.Option(None, "--owner", help="GitHub owner"),
        repo: str | None = typer.Option(None, "--repo", help="GitHub repository"),
        branch: str | None = typer.Option(None, "--branch", help="GitHub branch"),
        layout: str = typer.Option(
            Layout.AUTO.value,
            "--layout",
            help="Issue layout (auto, jsonl or markdown)",
        ),
        prefix: str | None = typer.Option(
            None,
            "--prefix",
            help="Prefix for new issue ids (default: from repository name)",
        ),
        force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """Create .beadsync/config.toml in the current directory."""
        config_dir = Path.cwd() / CONFIG_DIRNAME
        config_path = get_config_path(config_dir)
        if config_path.exists() and not force:
            echo_error(f"{config_path} already exists (use --force to overwrite)")
            raise typer.Exit(1)

        if backend not in BACKENDS:
            echo_error(f"Unknown backend '{backend}'")
            raise typer.Exit(1)
        if layout not in {value.value for value in Layout}:
            echo_error(f"Unknown layout '{layout}'")
            raise typer.Exit(1)
        if backend == "github" and not (owner and repo):
            echo_error("--owner and --repo are required for the github backend")
            raise typer.Exit(1)

        if prefix is None:
            prefix = prefix_from_repo(repo) if repo else DEFAULT_ID_PREFIX
        settings = Settings(
            backend=backend,
            layout=layout,
            id_prefix=prefix,
            github=GitHubSettings(owner=owner or "", repo=repo or "", branch=branch),
        )
        save_config(config_dir, settings_to_dict(settings))

        if is_json_output(json_output):
            echo_json({"config": str(config_path), **settings_to_dict(settings)})
        else:
            typer.echo(f"✓ Wrote {config_path}")
            typer.echo(f"  backend: {backend}, layout: {layout}, prefix: {prefix}")
