"""Cache maintenance commands."""

from __future__ import annotations
import click

from ..webapi.backend import WebApiBackend
from .helpers import cli, with_backend


@cli.command(name='cache-clear')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@with_backend
def cache_clear(backend: WebApiBackend, yes: bool):
    """Delete cached tracks, artists, user profile and images."""
    if not yes:
        click.confirm(f"Delete {backend.cache_dir.resolve()}?", abort=True)
    backend.wipe_cache()
    click.echo("Cache cleared.")


__all__ = ["cache_clear"]
