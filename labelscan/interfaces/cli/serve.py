"""Serve CLI command: run the HTTP API with uvicorn."""

from __future__ import annotations

import click


@click.command(name="serve")
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", type=int, default=8000, show_default=True, help="Port to listen on.")
def serve(host: str, port: int) -> None:
    """Run the label decoding API."""
    import uvicorn

    uvicorn.run("labelscan.app.api:app", host=host, port=port)
