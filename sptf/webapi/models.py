"""Typed Web API objects.

These dataclasses mirror the Spotify catalog JSON schema closely enough that
`Model.from_dict(model.to_dict()) == model`, which is what the object cache
relies on. Field names equal the JSON keys. Optional fields use None for
"absent"; an empty string from the server stays an empty string.

Objects are frozen: a Track shares its AlbumSimplified with every other
track built from the same album response and nobody may mutate it.
"""
from __future__ import annotations
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..errors import MalformedResponseError


def _require(data: Mapping[str, Any], key: str, kind: str) -> Any:
    if not isinstance(data, Mapping):
        raise MalformedResponseError(f"Malformed {kind} data: expected object, got {type(data).__name__}")
    if key not in data or data[key] is None:
        raise MalformedResponseError(f"Malformed {kind} data: missing `{key}`")
    return data[key]


def _optional(data: Mapping[str, Any], key: str) -> Any:
    return data.get(key)


def _int(data: Mapping[str, Any], key: str, kind: str) -> int:
    value = _require(data, key, kind)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedResponseError(f"Malformed {kind} data: `{key}` is not a number")
    return int(value)


def _list(data: Mapping[str, Any], key: str) -> list:
    value = data.get(key)
    return list(value) if isinstance(value, list) else []


@dataclass(frozen=True)
class Image:
    url: str
    height: Optional[int] = None
    width: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Image:
        return cls(
            url=_require(data, "url", "image"),
            height=_optional(data, "height"),
            width=_optional(data, "width"),
        )


def _images(data: Mapping[str, Any]) -> Tuple[Image, ...]:
    return tuple(Image.from_dict(i) for i in _list(data, "images"))


@dataclass(frozen=True)
class ArtistSimplified:
    id: str
    name: str
    uri: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ArtistSimplified:
        return cls(
            id=_require(data, "id", "artist"),
            name=_require(data, "name", "artist"),
            uri=_require(data, "uri", "artist"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Artist:
    id: str
    name: str
    uri: str
    genres: Tuple[str, ...] = ()
    images: Tuple[Image, ...] = ()
    popularity: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Artist:
        return cls(
            id=_require(data, "id", "artist"),
            name=_require(data, "name", "artist"),
            uri=_require(data, "uri", "artist"),
            genres=tuple(_list(data, "genres")),
            images=_images(data),
            popularity=_optional(data, "popularity"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AlbumSimplified:
    id: str
    name: str
    uri: str
    release_date: str
    album_type: Optional[str] = None
    release_date_precision: Optional[str] = None
    artists: Tuple[ArtistSimplified, ...] = ()
    images: Tuple[Image, ...] = ()
    total_tracks: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AlbumSimplified:
        return cls(
            id=_require(data, "id", "album"),
            name=_require(data, "name", "album"),
            uri=_require(data, "uri", "album"),
            release_date=_require(data, "release_date", "album"),
            album_type=_optional(data, "album_type"),
            release_date_precision=_optional(data, "release_date_precision"),
            artists=tuple(ArtistSimplified.from_dict(a) for a in _list(data, "artists")),
            images=_images(data),
            total_tracks=_optional(data, "total_tracks"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TrackLink:
    """Original track a relinked track stands in for."""
    id: str
    uri: str
    type: str = "track"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrackLink:
        return cls(
            id=_require(data, "id", "linked track"),
            uri=_require(data, "uri", "linked track"),
            type=data.get("type") or "track",
        )


@dataclass(frozen=True)
class Restriction:
    reason: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Restriction:
        return cls(reason=_require(data, "reason", "restriction"))


@dataclass(frozen=True)
class TrackSimplified:
    """Track as embedded in an album's track listing (no album reference)."""
    id: str
    name: str
    uri: str
    duration_ms: int
    track_number: int
    disc_number: int
    artists: Tuple[ArtistSimplified, ...] = ()
    explicit: Optional[bool] = None
    is_playable: Optional[bool] = None
    linked_from: Optional[TrackLink] = None
    restrictions: Optional[Restriction] = None
    preview_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrackSimplified:
        return cls(**_track_fields(data))


def _track_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    linked = data.get("linked_from")
    restrictions = data.get("restrictions")
    return dict(
        id=_require(data, "id", "track"),
        name=_require(data, "name", "track"),
        uri=_require(data, "uri", "track"),
        duration_ms=_int(data, "duration_ms", "track"),
        track_number=_int(data, "track_number", "track"),
        disc_number=_int(data, "disc_number", "track"),
        artists=tuple(ArtistSimplified.from_dict(a) for a in _list(data, "artists")),
        explicit=_optional(data, "explicit"),
        is_playable=_optional(data, "is_playable"),
        linked_from=TrackLink.from_dict(linked) if linked else None,
        restrictions=Restriction.from_dict(restrictions) if restrictions else None,
        preview_url=_optional(data, "preview_url"),
    )


@dataclass(frozen=True)
class Track:
    id: str
    name: str
    uri: str
    duration_ms: int
    track_number: int
    disc_number: int
    album: AlbumSimplified
    artists: Tuple[ArtistSimplified, ...] = ()
    explicit: Optional[bool] = None
    is_playable: Optional[bool] = None
    linked_from: Optional[TrackLink] = None
    restrictions: Optional[Restriction] = None
    preview_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Track:
        album = AlbumSimplified.from_dict(_require(data, "album", "track"))
        return cls(album=album, **_track_fields(data))

    @classmethod
    def from_simplified(cls, track: TrackSimplified, album: AlbumSimplified) -> Track:
        fields = {name: getattr(track, name) for name in TrackSimplified.__dataclass_fields__}
        return cls(album=album, **fields)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LocalTrack:
    """User-uploaded file that appears in a playlist but has no catalog entry."""
    uri: str
    name: str
    duration_ms: int = 0
    artists: Tuple[str, ...] = ()
    album: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LocalTrack:
        album = data.get("album") or {}
        return cls(
            uri=_require(data, "uri", "local track"),
            name=data.get("name") or "",
            duration_ms=int(data.get("duration_ms") or 0),
            artists=tuple(a.get("name") or "" for a in _list(data, "artists") if isinstance(a, Mapping)),
            album=album.get("name") if isinstance(album, Mapping) else None,
        )


PlaylistItem = Union[Track, LocalTrack]


def decode_playlist_item(data: Mapping[str, Any]) -> PlaylistItem:
    """Decode a playlist entry's `track` object into Track or LocalTrack.

    `is_local` decides first; a non-local entry without an `album` object
    cannot be a catalog track and is rejected.
    """
    if not isinstance(data, Mapping):
        raise MalformedResponseError("Malformed playlist item: `track` is not an object")
    if data.get("is_local"):
        return LocalTrack.from_dict(data)
    if not isinstance(data.get("album"), Mapping):
        raise MalformedResponseError("Malformed playlist item: non-local track without `album`")
    return Track.from_dict(data)


@dataclass(frozen=True)
class PlaylistTrack:
    track: Optional[PlaylistItem]
    added_at: Optional[str] = None
    is_local: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlaylistTrack:
        if not isinstance(data, Mapping):
            raise MalformedResponseError("Malformed playlist item: expected object")
        raw = data.get("track")
        # Unavailable or removed tracks come back as null
        track = decode_playlist_item(raw) if raw is not None else None
        return cls(
            track=track,
            added_at=data.get("added_at"),
            is_local=bool(data.get("is_local")) or isinstance(track, LocalTrack),
        )


@dataclass(frozen=True)
class User:
    id: str
    uri: str
    display_name: Optional[str] = None
    country: Optional[str] = None
    product: Optional[str] = None
    images: Tuple[Image, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> User:
        return cls(
            id=_require(data, "id", "user"),
            uri=_require(data, "uri", "user"),
            display_name=_optional(data, "display_name"),
            country=_optional(data, "country"),
            product=_optional(data, "product"),
            images=_images(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PagingObject:
    """Spotify's `{items, next, total, limit, offset}` envelope.

    Items stay raw JSON; the caller decides what they decode to.
    """
    items: List[Any] = field(default_factory=list)
    next: Optional[str] = None
    previous: Optional[str] = None
    total: int = 0
    limit: int = 0
    offset: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PagingObject:
        items = _require(data, "items", "paging object")
        if not isinstance(items, list):
            raise MalformedResponseError("Malformed paging object: `items` is not an array")
        return cls(
            items=items,
            next=data.get("next"),
            previous=data.get("previous"),
            total=int(data.get("total") or 0),
            limit=int(data.get("limit") or 0),
            offset=int(data.get("offset") or 0),
        )


__all__ = [
    "Image",
    "ArtistSimplified",
    "Artist",
    "AlbumSimplified",
    "TrackLink",
    "Restriction",
    "TrackSimplified",
    "Track",
    "LocalTrack",
    "PlaylistItem",
    "PlaylistTrack",
    "User",
    "PagingObject",
    "decode_playlist_item",
]
