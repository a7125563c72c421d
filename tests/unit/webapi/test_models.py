"""Tests for Web API object decoding."""
import pytest

from sptf.errors import MalformedResponseError
from sptf.webapi.models import (
    AlbumSimplified,
    Artist,
    LocalTrack,
    PagingObject,
    PlaylistTrack,
    Track,
    TrackSimplified,
    User,
    decode_playlist_item,
)

from tests.mocks.mock_spotify import (
    album_json,
    artist_json,
    local_track_json,
    paging_json,
    simplified_track_json,
    track_json,
    user_json,
)


def test_track_decodes_nested_objects():
    t = Track.from_dict(track_json("t1", track_number=3))
    assert t.id == "t1"
    assert t.track_number == 3
    assert t.album.name == "Example Album"
    assert t.artists[0].name == "Example Artist"
    assert t.linked_from is None
    assert t.preview_url is None


@pytest.mark.parametrize("model,data", [
    (Track, track_json("t1", linked_from={"id": "orig", "uri": "spotify:track:orig", "type": "track"},
                       restrictions={"reason": "market"}, preview_url="")),
    (Artist, artist_json("a1", full=True)),
    (AlbumSimplified, album_json("alb1")),
    (User, user_json()),
])
def test_to_dict_round_trip(model, data):
    obj = model.from_dict(data)
    assert model.from_dict(obj.to_dict()) == obj


def test_empty_string_is_not_absent():
    t = Track.from_dict(track_json("t1", preview_url=""))
    assert t.preview_url == ""


@pytest.mark.parametrize("missing", ["id", "name", "uri", "duration_ms", "album"])
def test_missing_required_field(missing):
    data = track_json("t1")
    del data[missing]
    with pytest.raises(MalformedResponseError, match=missing):
        Track.from_dict(data)


def test_non_numeric_duration():
    with pytest.raises(MalformedResponseError):
        Track.from_dict(track_json("t1", duration_ms="long"))


def test_playlist_item_discrimination():
    assert isinstance(decode_playlist_item(track_json("t1")), Track)
    local = decode_playlist_item(local_track_json("Demo"))
    assert isinstance(local, LocalTrack)
    assert local.artists == ("Me",)
    assert local.album == "Demos"


def test_non_local_item_without_album_is_malformed():
    data = track_json("t1")
    del data["album"]
    with pytest.raises(MalformedResponseError):
        decode_playlist_item(data)


def test_playlist_track_null_track():
    item = PlaylistTrack.from_dict({"added_at": "2024-01-01T00:00:00Z", "is_local": False, "track": None})
    assert item.track is None


def test_track_from_simplified_shares_album():
    album = AlbumSimplified.from_dict(album_json("alb1"))
    a = Track.from_simplified(TrackSimplified.from_dict(simplified_track_json("s1", 1)), album)
    b = Track.from_simplified(TrackSimplified.from_dict(simplified_track_json("s2", 2)), album)
    assert a.album is b.album
    assert (a.track_number, b.track_number) == (1, 2)


def test_paging_object():
    page = PagingObject.from_dict(paging_json([1, 2], next_url="https://api.spotify.com/v1/x?offset=2", total=5))
    assert page.items == [1, 2]
    assert page.next.endswith("offset=2")
    assert page.total == 5
    with pytest.raises(MalformedResponseError):
        PagingObject.from_dict({"items": "nope"})
    with pytest.raises(MalformedResponseError):
        PagingObject.from_dict({"next": None})


def test_user_optional_country():
    assert User.from_dict(user_json(country=None)).country is None
