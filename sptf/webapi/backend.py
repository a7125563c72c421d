"""Web API backend: the operations a player host calls.

Wires the authorizer, HTTP engine and caches together. Each public method
takes an optional CancellationToken; the call runs inside a scope linked to
the global shutdown token so shutdown() can wait for it.

Caches are only written after every request of an operation succeeded and
decoded, so a cancelled or failed call leaves them as they were.
"""

from __future__ import annotations
import logging
import shutil
import threading
import webbrowser
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

import requests

from ..auth.spotify_oauth import WebApiAuthorizer
from ..auth.token_store import RefreshTokenStore
from ..config_types import AppConfig
from ..errors import MalformedResponseError, MissingScopeError, NotFoundError
from ..utils.cancellation import AbortManager, CancellationToken, sleep_for
from ..utils.logging_helpers import format_summary
from ..utils.rate_limiter import RateLimiter
from .cache import ImageCache, ObjectCache, UserCache
from .client import WebApiClient, build_proxies
from .metadata import TrackMeta, get_meta_for_tracks
from .models import (
    AlbumSimplified,
    Artist,
    LocalTrack,
    PagingObject,
    PlaylistTrack,
    Track,
    TrackSimplified,
    User,
)

logger = logging.getLogger(__name__)

TRACKS_PER_REQUEST = 50
ARTISTS_PER_REQUEST = 50
PLAYLIST_PAGE_SIZE = 100


def _chunks(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _path_id(object_id: str) -> str:
    return quote(object_id, safe="")


def _require_list(payload: Mapping[str, Any], key: str) -> list:
    items = payload.get(key)
    if not isinstance(items, list):
        raise MalformedResponseError(f"Malformed response: missing `{key}`")
    return items


def _collect(ids: Iterable[str], fetched: Mapping[str, Any], cache: ObjectCache) -> Dict[str, Any]:
    """Objects for `ids` from this call's fetch results, else from the cache; misses are left out."""
    found: Dict[str, Any] = {}
    for object_id in dict.fromkeys(ids):
        obj = fetched.get(object_id)
        if obj is None:
            obj = cache.get(object_id)
        if obj is not None:
            found[object_id] = obj
    return found


class WebApiBackend:
    def __init__(
        self,
        data_dir: Path | str,
        authorizer: WebApiAuthorizer,
        client: WebApiClient,
        memory_entries: int = 512,
        max_disk_entries: int = 0,
    ):
        self.data_dir = Path(data_dir)
        self.cache_dir = self.data_dir / "cache"
        self.authorizer = authorizer
        self.client = client
        self.track_cache: ObjectCache[Track] = ObjectCache(self.cache_dir / "tracks", Track, memory_entries, max_disk_entries)
        self.artist_cache: ObjectCache[Artist] = ObjectCache(self.cache_dir / "artists", Artist, memory_entries, max_disk_entries)
        self.user_cache = UserCache(self.cache_dir / "self.json")
        self.album_image_cache = ImageCache(self.cache_dir / "albums")
        self.artist_image_cache = ImageCache(self.cache_dir / "artist_images")
        self._wipe_lock = threading.RLock()
        self._session: Optional[requests.Session] = None
        authorizer.add_refresh_token_listener(self._on_refresh_token_changed)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        abort_manager: AbortManager | None = None,
        session: requests.Session | None = None,
        open_browser: Callable[[str], Any] = webbrowser.open,
        sleeper: Callable[[float, Optional[CancellationToken]], None] = sleep_for,
    ) -> WebApiBackend:
        """Build the authorizer, HTTP engine and caches from configuration."""
        owns_session = session is None
        session = session or requests.Session()
        net = config.network
        proxies = build_proxies(net.proxy, net.proxy_username, net.proxy_password)
        if proxies:
            # token endpoint traffic goes through the same proxy
            session.proxies.update(proxies)
        sp = config.spotify
        authorizer = WebApiAuthorizer(
            client_id=sp.client_id,
            token_store=RefreshTokenStore(config.data_path / "auth"),
            scope=sp.scope,
            redirect_port=sp.redirect_port,
            redirect_path=sp.redirect_path,
            redirect_scheme=sp.redirect_scheme,
            redirect_host=sp.redirect_host,
            cert_file=sp.cert_file,
            key_file=sp.key_file,
            timeout_seconds=sp.timeout_seconds,
            session=session,
            open_browser=open_browser,
        )
        client = WebApiClient(
            authorizer,
            rate_limiter=RateLimiter(net.rps_limit),
            abort_manager=abort_manager,
            session=session,
            timeout=net.timeout_seconds,
            proxy=net.proxy,
            proxy_username=net.proxy_username,
            proxy_password=net.proxy_password,
            log_request=config.logging.webapi_request,
            log_response=config.logging.webapi_response,
            sleeper=sleeper,
        )
        backend = cls(config.data_path, authorizer, client,
                      memory_entries=config.cache.memory_entries,
                      max_disk_entries=config.cache.max_disk_entries)
        if owns_session:
            backend._session = session
        return backend

    @contextmanager
    def _scope(self, cancel: CancellationToken | None) -> Iterator[CancellationToken]:
        with self.client.abort_manager.linked_scope(cancel) as scope:
            yield scope

    def _on_refresh_token_changed(self, identity: Optional[str]) -> None:
        logger.debug("Refresh token changed; dropping cached user profile")
        self.user_cache.clear()

    # ---------------- User -----------------
    def get_user(self, cancel: CancellationToken | None = None) -> User:
        """Current user's profile, cached per refresh token."""
        with self._scope(cancel) as scope:
            cached = self.user_cache.get(self.authorizer.refresh_token_identity())
            if cached is not None:
                return cached
            user = User.from_dict(self.client.get_json("me", cancel=scope))
            # identity read again: the request may have minted a new refresh token
            self.user_cache.put(self.authorizer.refresh_token_identity(), user)
            return user

    def get_user_display_name(self, cancel: CancellationToken | None = None) -> str:
        user = self.get_user(cancel)
        return user.display_name or user.uri

    # ---------------- Tracks -----------------
    def refresh_cache_for_tracks(self, track_ids: Iterable[str], cancel: CancellationToken | None = None) -> List[str]:
        """Fetch every uncached id in batches of 50.

        Returns:
            Ids Spotify returned null for (nothing is cached for them)
        """
        _, missing = self._refresh_tracks(track_ids, cancel)
        return missing

    def _refresh_tracks(self, track_ids: Iterable[str], cancel: CancellationToken | None,
                        force: bool = False) -> Tuple[Dict[str, Track], List[str]]:
        unique = list(dict.fromkeys(track_ids))
        to_fetch = unique if force else [i for i in unique if not self.track_cache.contains(i)]
        fetched: Dict[str, Track] = {}
        requests_made = 0
        with self._scope(cancel) as scope:
            for chunk in _chunks(to_fetch, TRACKS_PER_REQUEST):
                payload = self.client.get_json("tracks", params={"ids": ",".join(chunk)}, cancel=scope)
                requests_made += 1
                for item in _require_list(payload, "tracks"):
                    if item is not None:
                        track = Track.from_dict(item)
                        fetched[track.id] = track
            self.track_cache.put_many(fetched.items())
        missing = [i for i in to_fetch if i not in fetched]
        if missing:
            logger.warning(f"Spotify returned no track for {len(missing)} id(s): {', '.join(missing[:10])}")
        logger.debug(format_summary(len(unique), len(unique) - len(to_fetch), len(fetched),
                                    len(missing), requests_made, "tracks"))
        return fetched, missing

    def get_track(self, track_id: str, cancel: CancellationToken | None = None, use_relink: bool = False) -> Track:
        """Single track.

        With `use_relink` the track is requested for the user's market so
        Spotify may substitute a playable version; such results bypass the
        track cache in both directions.
        """
        if not use_relink:
            cached = self.track_cache.get(track_id)
            if cached is not None:
                return cached
        with self._scope(cancel) as scope:
            params = None
            if use_relink:
                country = self.get_user(scope).country
                if country:
                    params = {"market": country}
            track = Track.from_dict(self.client.get_json(f"tracks/{_path_id(track_id)}", params=params, cancel=scope))
            if not use_relink:
                self.track_cache.put(track.id, track)
            return track

    def get_tracks(self, track_ids: Sequence[str], cancel: CancellationToken | None = None) -> List[Track]:
        """Tracks in input order (duplicates repeated).

        Raises:
            NotFoundError: Some ids are unknown to Spotify; the rest are cached
        """
        fetched, missing = self._refresh_tracks(track_ids, cancel)
        if missing:
            raise NotFoundError(missing)
        found = _collect(track_ids, fetched, self.track_cache)
        # entries can disappear between refresh and read (eviction, corrupt file, wipe)
        evicted = [i for i in dict.fromkeys(track_ids) if i not in found]
        if evicted:
            logger.debug(f"Re-fetching {len(evicted)} track(s) dropped from the cache")
            refetched, missing = self._refresh_tracks(evicted, cancel, force=True)
            if missing:
                raise NotFoundError(missing)
            found.update(refetched)
        return [found[i] for i in track_ids]

    def get_tracks_from_playlist(self, playlist_id: str, cancel: CancellationToken | None = None) -> Tuple[List[Track], List[LocalTrack]]:
        """All playlist entries split into catalog tracks and local files, in server order.

        Entries whose track is null (removed from the catalog) are skipped.
        """
        tracks: List[Track] = []
        local_tracks: List[LocalTrack] = []
        url: Optional[str] = f"playlists/{_path_id(playlist_id)}/tracks"
        params: Optional[Dict[str, Any]] = {"limit": PLAYLIST_PAGE_SIZE}
        pages = 0
        with self._scope(cancel) as scope:
            while url:
                page = PagingObject.from_dict(self.client.get_json(url, params=params, cancel=scope))
                pages += 1
                for raw in page.items:
                    item = PlaylistTrack.from_dict(raw)
                    if item.track is None:
                        continue
                    if isinstance(item.track, LocalTrack):
                        local_tracks.append(item.track)
                    else:
                        tracks.append(item.track)
                # `next` already carries the query
                url, params = page.next, None
            self.track_cache.put_many({t.id: t for t in tracks}.items())
        logger.debug(f"Playlist {playlist_id}: {len(tracks)} tracks, {len(local_tracks)} local, {pages} page(s)")
        return tracks, local_tracks

    def get_tracks_from_album(self, album_id: str, cancel: CancellationToken | None = None) -> List[Track]:
        """All album tracks; the first page is embedded in the album object."""
        with self._scope(cancel) as scope:
            payload = self.client.get_json(f"albums/{_path_id(album_id)}", cancel=scope)
            album = AlbumSimplified.from_dict(payload)
            page_json = payload.get("tracks")
            if not isinstance(page_json, Mapping):
                raise MalformedResponseError("Malformed album response: missing `tracks`")
            simplified: List[TrackSimplified] = []
            while True:
                page = PagingObject.from_dict(page_json)
                simplified.extend(TrackSimplified.from_dict(i) for i in page.items)
                if not page.next:
                    break
                page_json = self.client.get_json(page.next, cancel=scope)
            tracks = [Track.from_simplified(t, album) for t in simplified]
            self.track_cache.put_many((t.id, t) for t in tracks)
            return tracks

    def get_top_tracks_for_artist(self, artist_id: str, cancel: CancellationToken | None = None) -> List[Track]:
        """Artist's top tracks in the user's market.

        Raises:
            MissingScopeError: The user profile has no country (scope
                `user-read-private` not granted)
        """
        with self._scope(cancel) as scope:
            country = self.get_user(scope).country
            if not country:
                raise MissingScopeError(
                    "Adding artist top tracks requires `user-read-private` permission.\n"
                    "Re-login to update your permission scope."
                )
            payload = self.client.get_json(f"artists/{_path_id(artist_id)}/top-tracks",
                                           params={"market": country}, cancel=scope)
            tracks = [Track.from_dict(i) for i in _require_list(payload, "tracks") if i is not None]
            self.track_cache.put_many((t.id, t) for t in tracks)
            return tracks

    # ---------------- Artists -----------------
    def refresh_cache_for_artists(self, artist_ids: Iterable[str], cancel: CancellationToken | None = None) -> List[str]:
        _, missing = self._refresh_artists(artist_ids, cancel)
        return missing

    def _refresh_artists(self, artist_ids: Iterable[str], cancel: CancellationToken | None,
                         force: bool = False) -> Tuple[Dict[str, Artist], List[str]]:
        unique = list(dict.fromkeys(artist_ids))
        to_fetch = unique if force else [i for i in unique if not self.artist_cache.contains(i)]
        fetched: Dict[str, Artist] = {}
        requests_made = 0
        with self._scope(cancel) as scope:
            for chunk in _chunks(to_fetch, ARTISTS_PER_REQUEST):
                payload = self.client.get_json("artists", params={"ids": ",".join(chunk)}, cancel=scope)
                requests_made += 1
                for item in _require_list(payload, "artists"):
                    if item is not None:
                        artist = Artist.from_dict(item)
                        fetched[artist.id] = artist
            self.artist_cache.put_many(fetched.items())
        missing = [i for i in to_fetch if i not in fetched]
        logger.debug(format_summary(len(unique), len(unique) - len(to_fetch), len(fetched),
                                    len(missing), requests_made, "artists"))
        return fetched, missing

    def get_artists(self, artist_ids: Sequence[str], cancel: CancellationToken | None = None) -> List[Artist]:
        fetched, missing = self._refresh_artists(artist_ids, cancel)
        if missing:
            raise NotFoundError(missing)
        found = _collect(artist_ids, fetched, self.artist_cache)
        evicted = [i for i in dict.fromkeys(artist_ids) if i not in found]
        if evicted:
            logger.debug(f"Re-fetching {len(evicted)} artist(s) dropped from the cache")
            refetched, missing = self._refresh_artists(evicted, cancel, force=True)
            if missing:
                raise NotFoundError(missing)
            found.update(refetched)
        return [found[i] for i in artist_ids]

    def get_artist(self, artist_id: str, cancel: CancellationToken | None = None) -> Artist:
        cached = self.artist_cache.get(artist_id)
        if cached is not None:
            return cached
        with self._scope(cancel) as scope:
            artist = Artist.from_dict(self.client.get_json(f"artists/{_path_id(artist_id)}", cancel=scope))
            self.artist_cache.put(artist.id, artist)
            return artist

    # ---------------- Images -----------------
    def get_album_image(self, album_id: str, image_url: str, cancel: CancellationToken | None = None) -> Path:
        """Local path of the album art, downloading it on first use."""
        with self._scope(cancel) as scope:
            return self.album_image_cache.get_or_fetch(album_id, image_url, self.client.download, scope)

    def get_artist_image(self, artist_id: str, image_url: str, cancel: CancellationToken | None = None) -> Path:
        with self._scope(cancel) as scope:
            return self.artist_image_cache.get_or_fetch(artist_id, image_url, self.client.download, scope)

    # ---------------- Metadata -----------------
    @staticmethod
    def get_meta_for_tracks(tracks: Iterable[Track]) -> List[TrackMeta]:
        return get_meta_for_tracks(tracks)

    # ---------------- Lifecycle -----------------
    def logout(self) -> None:
        self.authorizer.clear_auth()
        self.user_cache.clear()

    def wipe_cache(self) -> None:
        """Delete every cached object and image."""
        with self._wipe_lock:
            self.track_cache.clear()
            self.artist_cache.clear()
            self.user_cache.clear()
            self.album_image_cache.clear()
            self.artist_image_cache.clear()
            if self.cache_dir.exists():
                shutil.rmtree(self.cache_dir)
        logger.info(f"Removed cache directory {self.cache_dir}")

    def shutdown(self, timeout: float | None = None) -> bool:
        """Cancel in-flight calls, wait for them, then release the authorizer and transport.

        Returns:
            True if every in-flight call finished within `timeout`
        """
        drained = self.client.abort_manager.shutdown(timeout)
        if not drained:
            logger.warning(f"{self.client.abort_manager.active_scopes} Web API call(s) still running at shutdown")
        self.authorizer.close()
        self.client.close()
        if self._session is not None:
            self._session.close()
            self._session = None
        return drained


__all__ = ["WebApiBackend", "TRACKS_PER_REQUEST", "ARTISTS_PER_REQUEST", "PLAYLIST_PAGE_SIZE"]
