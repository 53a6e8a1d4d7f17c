"""Run the API server."""

import click
import uvicorn

from ledgerly.settings import settings


@click.command(name='serve')
@click.option('--host', default=None, help='Bind address (default API_HOST)')
@click.option('--port', default=None, type=int, help='Port (default API_PORT)')
@click.option('--reload/--no-reload', default=None, help='Auto-reload on code changes (default on in development)')
def serve_command(host, port, reload):
    """Start the FastAPI application with uvicorn."""
    reload = settings.is_development if reload is None else reload
    uvicorn.run(
        "ledgerly.api:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        workers=None if reload else settings.api_workers,
    )
