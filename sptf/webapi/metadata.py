"""Projection of Track objects onto player metadata tags.

Each track becomes a multimap (tag -> list of values). `SPTF_LENGTH` carries
the catalog duration in milliseconds; the playback engine overrides it with
the decoded length once the stream is open.
"""

from __future__ import annotations
import logging
from typing import Dict, Iterable, List

from .models import Track

logger = logging.getLogger(__name__)

TrackMeta = Dict[str, List[str]]


def extract_year(release_date: str | None) -> int | None:
    """Extract year from Spotify release date string.

    Spotify returns dates in various formats: YYYY-MM-DD, YYYY-MM, or YYYY.
    """
    if not release_date:
        return None
    if len(release_date) >= 4 and release_date[:4].isdigit():
        return int(release_date[:4])
    return None


def meta_for_track(track: Track) -> TrackMeta:
    meta: TrackMeta = {
        "SPTF_LENGTH": [str(track.duration_ms)],
        "TITLE": [track.name],
        "TRACKNUMBER": [str(track.track_number)],
        "DISCNUMBER": [str(track.disc_number)],
    }
    artists = [a.name for a in track.artists]
    if artists:
        meta["ARTIST"] = artists
    meta["ALBUM"] = [track.album.name]
    meta["DATE"] = [track.album.release_date]
    album_artists = [a.name for a in track.album.artists]
    if album_artists:
        meta["ALBUM ARTIST"] = album_artists
    return meta


def get_meta_for_tracks(tracks: Iterable[Track]) -> List[TrackMeta]:
    """One tag multimap per track, in input order."""
    return [meta_for_track(t) for t in tracks]


__all__ = ["TrackMeta", "extract_year", "meta_for_track", "get_meta_for_tracks"]
