from __future__ import annotations
import functools
import logging

import click

from ..config import load_typed_config
from ..config_types import AppConfig
from ..errors import SpotifyError
from ..version import __version__
from ..webapi.backend import WebApiBackend

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="sptf-webapi")
@click.option('--data-dir', type=click.Path(file_okay=False), default=None, help='Directory holding auth/ and cache/ (overrides config)')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False), default=None)
@click.pass_context
def cli(ctx: click.Context, data_dir: str | None, log_level: str | None):
    """Spotify Web API client: login, catalog lookups and the local object cache.

    \b
    TYPICAL WORKFLOWS:

    \b
    Setup:
      sptf redirect-uri          # Register this URI in the Spotify dashboard
      sptf login                 # Authorize in the browser (PKCE)

    \b
    Lookups (any of spotify:track:ID, open.spotify.com URL or sptf:// path):
      sptf track ID [--relink]
      sptf playlist ID
      sptf album ID
      sptf meta ID...

    \b
    Maintenance:
      sptf status                # Login state and cache sizes
      sptf cache-clear           # Drop cached tracks, artists and images
      sptf logout
    """
    if isinstance(ctx.obj, AppConfig):
        return
    overrides = {}
    if data_dir:
        overrides['data_dir'] = data_dir
    if log_level:
        overrides['log_level'] = log_level.upper()
    try:
        ctx.obj = load_typed_config(overrides or None)
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}")


def build_backend(cfg: AppConfig) -> WebApiBackend:
    """Construct the backend graph for one CLI invocation."""
    return WebApiBackend.from_config(cfg)


def with_backend(func):
    """Pass a backend as first argument and shut it down afterwards.

    SpotifyError is reported as a click error instead of a traceback.
    """
    @functools.wraps(func)
    @click.pass_context
    def wrapper(ctx: click.Context, *args, **kwargs):
        backend = build_backend(ctx.obj)
        try:
            return func(backend, *args, **kwargs)
        except SpotifyError as e:
            logger.debug("Command failed", exc_info=True)
            raise click.ClickException(str(e))
        finally:
            backend.shutdown(timeout=5)
    return wrapper


__all__ = ["cli", "build_backend", "with_backend"]
