"""CLI command for the JSON HTTP API."""

from __future__ import annotations

import sys

import click

from cardflow.core import CARDFLOW_DIR_NAME


@click.command()
@click.option("--port", default=8378, type=int, help="Port to listen on (default: 8378)")
@click.option("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
def serve(port: int, host: str) -> None:
    """Serve the card API over HTTP (FastAPI + uvicorn)."""
    from cardflow.api import main

    try:
        main(port=port, host=host)
    except FileNotFoundError:
        click.echo(f"No {CARDFLOW_DIR_NAME}/ found. Run 'cardflow init' first.", err=True)
        sys.exit(1)
