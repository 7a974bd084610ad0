"""HTTP server command for the beadsync CLI."""

from __future__ import annotations

import typer

from ._helpers import get_settings

DEFAULT_PORT = 48043


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        host: str = typer.Option("127.0.0.1", help="Host to bind to"),
        port: int = typer.Option(DEFAULT_PORT, help="Port to listen on"),
    ) -> None:
        """Serve the issue API over HTTP."""
        import uvicorn

        from beadsync.web import create_app, settings_service_factory

        settings = get_settings()
        fastapi_app = create_app(settings_service_factory(settings))

        typer.echo(f"beadsync API → http://{host}:{port}/api/repos/")
        uvicorn.run(fastapi_app, host=host, port=port, log_level="warning")
