"""Catalog lookup commands."""

from __future__ import annotations
import re
from typing import Iterable, List

import click

from ..errors import InvalidIdentifierError
from ..identifiers import SpotifyObject
from ..webapi.backend import WebApiBackend
from ..webapi.metadata import extract_year
from ..webapi.models import Track
from .helpers import cli, with_backend

_BARE_ID = re.compile(r"^[A-Za-z0-9]+$")


def resolve_id(text: str, expected_type: str) -> str:
    """Accept a bare id or any identifier form of `expected_type`."""
    if _BARE_ID.match(text):
        return text
    try:
        obj = SpotifyObject.parse(text)
    except InvalidIdentifierError as e:
        raise click.BadParameter(str(e))
    if obj.type != expected_type:
        raise click.BadParameter(f"Expected a {expected_type}, got a {obj.type}: {text}")
    return obj.id


def _echo_tracks(tracks: Iterable[Track]) -> None:
    for t in tracks:
        artists = ", ".join(a.name for a in t.artists)
        year = extract_year(t.album.release_date)
        minutes, seconds = divmod(t.duration_ms // 1000, 60)
        click.echo(f"{t.id}  {artists} - {t.name} [{t.album.name}{f', {year}' if year else ''}] {minutes}:{seconds:02d}")


@cli.command()
@click.argument('text')
def parse(text: str):
    """Parse a Spotify URI, open.spotify.com URL or sptf:// path."""
    try:
        obj = SpotifyObject.parse(text)
    except InvalidIdentifierError as e:
        raise click.ClickException(str(e))
    click.echo(f"type:   {obj.type}")
    click.echo(f"id:     {obj.id}")
    click.echo(f"uri:    {obj.to_uri()}")
    click.echo(f"url:    {obj.to_url()}")
    click.echo(f"scheme: {obj.to_scheme()}")


@cli.command()
@click.argument('track_id')
@click.option('--relink', is_flag=True, help='Request the playable version for your market (not cached)')
@with_backend
def track(backend: WebApiBackend, track_id: str, relink: bool):
    """Show one track."""
    t = backend.get_track(resolve_id(track_id, 'track'), use_relink=relink)
    _echo_tracks([t])
    if t.linked_from is not None:
        click.echo(f"  relinked from {t.linked_from.uri}")


@cli.command()
@click.argument('track_ids', nargs=-1, required=True)
@with_backend
def tracks(backend: WebApiBackend, track_ids: tuple):
    """Show several tracks (fetched in batches of 50)."""
    ids: List[str] = [resolve_id(t, 'track') for t in track_ids]
    _echo_tracks(backend.get_tracks(ids))


@cli.command()
@click.argument('playlist_id')
@with_backend
def playlist(backend: WebApiBackend, playlist_id: str):
    """List all tracks of a playlist."""
    catalog, local = backend.get_tracks_from_playlist(resolve_id(playlist_id, 'playlist'))
    _echo_tracks(catalog)
    for lt in local:
        click.echo(f"(local)  {', '.join(lt.artists)} - {lt.name}")
    click.echo(f"\n{len(catalog)} tracks, {len(local)} local files")


@cli.command()
@click.argument('album_id')
@with_backend
def album(backend: WebApiBackend, album_id: str):
    """List all tracks of an album."""
    _echo_tracks(backend.get_tracks_from_album(resolve_id(album_id, 'album')))


@cli.command()
@click.argument('artist_id')
@with_backend
def artist(backend: WebApiBackend, artist_id: str):
    """Show an artist."""
    a = backend.get_artist(resolve_id(artist_id, 'artist'))
    click.echo(f"{a.id}  {a.name}")
    if a.genres:
        click.echo(f"  genres: {', '.join(a.genres)}")
    if a.images:
        click.echo(f"  image: {a.images[0].url}")


@cli.command(name='top-tracks')
@click.argument('artist_id')
@with_backend
def top_tracks(backend: WebApiBackend, artist_id: str):
    """Show an artist's top tracks in your market."""
    _echo_tracks(backend.get_top_tracks_for_artist(resolve_id(artist_id, 'artist')))


@cli.command()
@click.argument('track_ids', nargs=-1, required=True)
@with_backend
def meta(backend: WebApiBackend, track_ids: tuple):
    """Print player metadata tags for tracks."""
    found = backend.get_tracks([resolve_id(t, 'track') for t in track_ids])
    for t, tags in zip(found, backend.get_meta_for_tracks(found)):
        click.echo(click.style(t.uri, fg='cyan'))
        for key, values in tags.items():
            for value in values:
                click.echo(f"  {key}={value}")


@cli.command()
@click.argument('track_id')
@with_backend
def cover(backend: WebApiBackend, track_id: str):
    """Download a track's album art into the image cache and print its path."""
    t = backend.get_track(resolve_id(track_id, 'track'))
    if not t.album.images:
        raise click.ClickException(f"Album {t.album.id} has no images")
    click.echo(str(backend.get_album_image(t.album.id, t.album.images[0].url)))


__all__ = ["parse", "track", "tracks", "playlist", "album", "artist", "top_tracks", "meta", "cover", "resolve_id"]
