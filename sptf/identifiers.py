"""Spotify object identifiers.

Parses and formats the three textual forms a Spotify object can take:

- URI:    spotify:track:4cOdK2wGLETKBW3PvgPWqT
- URL:    https://open.spotify.com/track/4cOdK2wGLETKBW3PvgPWqT?si=...
- Scheme: sptf://spotify:track:4cOdK2wGLETKBW3PvgPWqT (paths owned by the player plugin)
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum

from .errors import InvalidIdentifierError, UnsupportedTypeError

SCHEME_PREFIX = "sptf://"
URL_PREFIX = "https://open.spotify.com/"
URI_PREFIX = "spotify"
SUPPORTED_TYPES = frozenset({"track", "album", "playlist"})


class IdentifierForm(str, Enum):
    URI = "uri"
    URL = "url"
    SCHEME = "scheme"


def _check_id(object_id: str) -> str:
    if not object_id:
        raise InvalidIdentifierError(f"Invalid Spotify object id: {object_id!r}")
    if "?" in object_id or "/" in object_id:
        raise InvalidIdentifierError(f"Invalid Spotify object id: {object_id!r}")
    return object_id


def _check_type(object_type: str) -> str:
    if object_type not in SUPPORTED_TYPES:
        raise UnsupportedTypeError(object_type)
    return object_type


@dataclass(frozen=True)
class SpotifyObject:
    """A `{type, id}` pair identifying a track, album or playlist."""
    type: str
    id: str

    def __post_init__(self) -> None:
        _check_type(self.type)
        _check_id(self.id)

    @classmethod
    def parse(cls, text: str) -> SpotifyObject:
        """Parse a URI, open.spotify.com URL or sptf:// path.

        Raises:
            InvalidIdentifierError: Input has none of the recognized shapes
            UnsupportedTypeError: Shape is valid but the type is not track/album/playlist
        """
        if text.startswith(SCHEME_PREFIX):
            text = text[len(SCHEME_PREFIX):]

        if text.startswith(URL_PREFIX):
            parts = text[len(URL_PREFIX):].split("/")
            if len(parts) != 2 or not parts[0] or not parts[1]:
                raise InvalidIdentifierError(f"Invalid URL: {text}")
            object_type, raw_id = parts
            _check_type(object_type)
            return cls(object_type, _check_id(raw_id.split("?", 1)[0]))

        parts = text.split(":")
        if len(parts) != 3 or parts[0] != URI_PREFIX:
            raise InvalidIdentifierError(f"Invalid URI: {text}")
        _, object_type, object_id = parts
        _check_type(object_type)
        return cls(object_type, _check_id(object_id))

    @classmethod
    def is_valid(cls, text: str) -> bool:
        try:
            cls.parse(text)
        except InvalidIdentifierError:
            return False
        return True

    def to_uri(self) -> str:
        return f"spotify:{self.type}:{self.id}"

    def to_url(self) -> str:
        return f"{URL_PREFIX}{self.type}/{self.id}"

    def to_scheme(self) -> str:
        return f"{SCHEME_PREFIX}{self.to_uri()}"

    def format_as(self, form: IdentifierForm | str) -> str:
        form = IdentifierForm(form)
        if form is IdentifierForm.URL:
            return self.to_url()
        if form is IdentifierForm.SCHEME:
            return self.to_scheme()
        return self.to_uri()

    def __str__(self) -> str:
        return self.to_uri()


def track(track_id: str) -> SpotifyObject:
    """Shorthand for a track identifier."""
    return SpotifyObject("track", track_id)


def is_filtered_track(text: str, pure_path_only: bool = False) -> bool:
    """Check whether `text` is a track path owned by the player plugin.

    With `pure_path_only` the `sptf://` prefix is mandatory; otherwise a bare
    `spotify:track:` URI is accepted as well.
    """
    if text.startswith(SCHEME_PREFIX):
        text = text[len(SCHEME_PREFIX):]
    elif pure_path_only:
        return False
    return text.startswith("spotify:track:")


__all__ = [
    "SpotifyObject",
    "IdentifierForm",
    "SUPPORTED_TYPES",
    "track",
    "is_filtered_track",
]
