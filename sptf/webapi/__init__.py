"""Spotify Web API access: HTTP engine, caches, typed objects and the backend facade."""

from .backend import WebApiBackend
from .client import API_BASE, WebApiClient
from .metadata import get_meta_for_tracks
from .models import Artist, AlbumSimplified, LocalTrack, Track, User

__all__ = [
    "WebApiBackend",
    "WebApiClient",
    "API_BASE",
    "get_meta_for_tracks",
    "Artist",
    "AlbumSimplified",
    "LocalTrack",
    "Track",
    "User",
]
