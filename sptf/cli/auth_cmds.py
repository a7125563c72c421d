"""Login, logout and OAuth helper commands."""

from __future__ import annotations
import click

from ..errors import AuthRequiredError
from ..webapi.backend import WebApiBackend
from .helpers import cli, with_backend


@cli.command()
@with_backend
def login(backend: WebApiBackend):
    """Authorize with Spotify in the browser (PKCE) and store the refresh token."""
    if not backend.authorizer.client_id:
        raise click.UsageError('spotify.client_id not configured (set SPTF__SPOTIFY__CLIENT_ID)')
    click.echo(f"Waiting for the browser redirect on {backend.authorizer.build_redirect_uri()} ...")
    try:
        backend.authorizer.authenticate_clean_blocking()
    except KeyboardInterrupt:
        backend.authorizer.cancel_auth()
        raise click.Abort()
    click.echo(f"Logged in as {backend.get_user_display_name()}")


@cli.command()
@with_backend
def logout(backend: WebApiBackend):
    """Forget the stored refresh token and cached user profile."""
    backend.logout()
    click.echo("Logged out.")


@cli.command()
@with_backend
def status(backend: WebApiBackend):
    """Show login state and cache sizes."""
    auth = backend.authorizer
    if not auth.has_refresh_token():
        click.echo("Not logged in.")
    else:
        try:
            name = backend.get_user_display_name()
            click.echo(f"Logged in as {name} (scopes: {' '.join(sorted(auth.scopes)) or 'unknown'})")
        except AuthRequiredError as e:
            click.echo(f"Login required: {e}")
    click.echo(f"Cached tracks: {len(backend.track_cache)}")
    click.echo(f"Cached artists: {len(backend.artist_cache)}")
    click.echo(f"Cache directory: {backend.cache_dir.resolve()}")


@cli.command(name="redirect-uri")
@click.pass_context
def redirect_uri(ctx: click.Context):
    """Show OAuth redirect URI for Spotify app configuration."""
    sp = ctx.obj.spotify
    uri = f"{sp.redirect_scheme}://{sp.redirect_host}:{sp.redirect_port}{sp.redirect_path if sp.redirect_path.startswith('/') else '/' + sp.redirect_path}"
    click.echo(uri)
    click.echo("\nValidation checklist:")
    for line in [
        f"1. Spotify Dashboard has EXACT entry: {uri}",
        f"2. Scheme matches (expected {sp.redirect_scheme})",
        f"3. Port matches (expected {sp.redirect_port}; 0 picks a free port and cannot be pre-registered)",
        f"4. Path matches (expected {sp.redirect_path})",
        "5. Client ID corresponds to the app whose dashboard you edited",
    ]:
        click.echo(f" - {line}")


__all__ = ["login", "logout", "status", "redirect_uri"]
