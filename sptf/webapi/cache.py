"""Persistent caches for Web API objects and images.

Layout under `<data_dir>/cache/`::

    tracks/<id>.json          ObjectCache entries  {"key", "stored_at", "value"}
    artists/<id>.json
    self.json                 UserCache            {"identity", "stored_at", "value"}
    albums/<id>.<ext>         ImageCache (album art)
    artist_images/<id>.<ext>  ImageCache (artist pictures)

Object entries never expire; they are replaced when the same id is stored
again. A file that fails to decode is removed and reported as a miss.
"""

from __future__ import annotations
import json
import logging
import shutil
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Set, Tuple, Type, TypeVar
from urllib.parse import urlsplit

from ..errors import CanceledError, MalformedResponseError
from ..utils.cancellation import CancellationToken
from ..utils.fs import atomic_write_bytes, atomic_write_json, is_temp_file, safe_filename
from .models import User

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENTRY_SUFFIX = ".json"
DEFAULT_IMAGE_EXT = ".jpg"
_CONTENT_TYPE_EXT = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/pjpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}
_KNOWN_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}


class ObjectCache(Generic[T]):
    """Id-keyed store of one model type, persisted as one JSON file per object.

    A bounded in-memory LRU of raw JSON sits in front of the directory. get()
    always decodes a fresh object, so callers own what they receive.
    """

    def __init__(self, root: Path | str, model: Type[T], memory_entries: int = 512, max_disk_entries: int = 0):
        self.root = Path(root)
        self.model = model
        self.memory_entries = max(0, int(memory_entries))
        self.max_disk_entries = max(0, int(max_disk_entries))
        self._memory: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self._index: Optional[Set[str]] = None
        self._lock = threading.RLock()

    def _path(self, key: str) -> Path:
        return self.root / (safe_filename(key) + ENTRY_SUFFIX)

    def _load_index(self) -> Set[str]:
        # Enumerated lazily on first lookup
        if self._index is None:
            index: Set[str] = set()
            if self.root.is_dir():
                for p in self.root.iterdir():
                    if p.suffix == ENTRY_SUFFIX and not is_temp_file(p):
                        index.add(p.stem)
            self._index = index
            logger.debug(f"Cache index {self.root.name}: {len(index)} entries")
        return self._index

    def _remember(self, key: str, raw: Dict[str, Any]) -> None:
        if not self.memory_entries:
            return
        self._memory[key] = raw
        self._memory.move_to_end(key)
        while len(self._memory) > self.memory_entries:
            self._memory.popitem(last=False)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._memory or safe_filename(key) in self._load_index()

    __contains__ = contains

    def __len__(self) -> int:
        with self._lock:
            return len(self._load_index())

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._load_index())

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            raw = self._memory.get(key)
            if raw is not None:
                self._memory.move_to_end(key)
                return self._decode(key, raw)
            if safe_filename(key) not in self._load_index():
                return None
            path = self._path(key)
            try:
                entry = json.loads(path.read_text(encoding="utf-8"))
                raw = entry["value"]
                obj = self.model.from_dict(raw)  # type: ignore[attr-defined]
            except FileNotFoundError:
                self._load_index().discard(safe_filename(key))
                return None
            except (ValueError, KeyError, TypeError, MalformedResponseError) as e:
                logger.warning(f"Dropping corrupt cache entry {path}: {e}")
                self._discard(key)
                return None
            self._remember(key, raw)
            return obj

    def _decode(self, key: str, raw: Dict[str, Any]) -> Optional[T]:
        try:
            return self.model.from_dict(raw)  # type: ignore[attr-defined]
        except (KeyError, TypeError, MalformedResponseError) as e:
            logger.warning(f"Dropping corrupt cache entry {key}: {e}")
            self._discard(key)
            return None

    def get_many(self, keys: Iterable[str]) -> Dict[str, T]:
        found: Dict[str, T] = {}
        for key in keys:
            obj = self.get(key)
            if obj is not None:
                found[key] = obj
        return found

    def put(self, key: str, obj: T) -> None:
        raw = obj.to_dict()  # type: ignore[attr-defined]
        entry = {"key": key, "stored_at": time.time(), "value": raw}
        with self._lock:
            atomic_write_json(self._path(key), entry)
            self._load_index().add(safe_filename(key))
            # keep a private copy; the caller may still hold `raw`
            self._remember(key, json.loads(json.dumps(raw)))
            self._evict_disk()

    def put_many(self, items: Iterable[Tuple[str, T]]) -> int:
        count = 0
        for key, obj in items:
            self.put(key, obj)
            count += 1
        return count

    def remove(self, key: str) -> None:
        with self._lock:
            self._discard(key)

    def _discard(self, key: str) -> None:
        self._memory.pop(key, None)
        if self._index is not None:
            self._index.discard(safe_filename(key))
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def _evict_disk(self) -> None:
        if not self.max_disk_entries:
            return
        index = self._load_index()
        excess = len(index) - self.max_disk_entries
        if excess <= 0:
            return
        by_age = sorted(
            (p for p in self.root.glob("*" + ENTRY_SUFFIX) if not is_temp_file(p)),
            key=lambda p: p.stat().st_mtime,
        )
        for p in by_age[:excess]:
            logger.debug(f"Evicting cache entry {p.name}")
            self._memory.pop(p.stem, None)
            index.discard(p.stem)
            p.unlink(missing_ok=True)

    def clear(self) -> None:
        with self._lock:
            self._memory.clear()
            self._index = None
            if self.root.exists():
                shutil.rmtree(self.root)


class UserCache:
    """Single-entry cache of the current user, tied to a refresh-token identity.

    An entry stored under a different identity (another account logged in
    since) is reported as a miss.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def get(self, identity: Optional[str]) -> Optional[User]:
        if not identity:
            return None
        with self._lock:
            try:
                entry = json.loads(self.path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                return None
            except (OSError, ValueError) as e:
                logger.warning(f"Dropping corrupt user cache {self.path}: {e}")
                self.path.unlink(missing_ok=True)
                return None
            if not isinstance(entry, dict) or entry.get("identity") != identity:
                return None
            try:
                return User.from_dict(entry["value"])
            except (KeyError, TypeError, MalformedResponseError) as e:
                logger.warning(f"Dropping corrupt user cache {self.path}: {e}")
                self.path.unlink(missing_ok=True)
                return None

    def put(self, identity: Optional[str], user: User) -> None:
        if not identity:
            return
        with self._lock:
            atomic_write_json(self.path, {"identity": identity, "stored_at": time.time(), "value": user.to_dict()})

    def clear(self) -> None:
        with self._lock:
            self.path.unlink(missing_ok=True)


def image_extension(content_type: str, url: str = "") -> str:
    """Pick a file extension: Content-Type first, then the URL suffix, then .jpg."""
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime in _CONTENT_TYPE_EXT:
        return _CONTENT_TYPE_EXT[mime]
    suffix = Path(urlsplit(url).path).suffix.lower()
    if suffix in _KNOWN_EXTS:
        return ".jpg" if suffix == ".jpeg" else suffix
    return DEFAULT_IMAGE_EXT


class _InFlight:
    __slots__ = ("event", "path", "error")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.path: Optional[Path] = None
        self.error: Optional[BaseException] = None


Downloader = Callable[[str, Optional[CancellationToken]], Tuple[bytes, str]]


class ImageCache:
    """Directory of downloaded images keyed by Spotify id.

    Concurrent requests for the same key share one download.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self._lock = threading.Lock()
        self._in_flight: Dict[str, _InFlight] = {}

    def find(self, key: str) -> Optional[Path]:
        stem = safe_filename(key)
        if not self.root.is_dir():
            return None
        for p in sorted(self.root.glob(stem + ".*")):
            if p.stem == stem and not is_temp_file(p):
                return p
        return None

    def store(self, key: str, data: bytes, content_type: str = "", url: str = "") -> Path:
        path = self.root / (safe_filename(key) + image_extension(content_type, url))
        return atomic_write_bytes(path, data)

    def get_or_fetch(self, key: str, url: str, download: Downloader,
                     cancel: CancellationToken | None = None) -> Path:
        """Return the cached image path, downloading it once if missing.

        A caller waiting on another caller's download takes over when that
        download was cancelled, unless its own token fired too.
        """
        while True:
            existing = self.find(key)
            if existing is not None:
                return existing
            with self._lock:
                flight = self._in_flight.get(key)
                leader = flight is None
                if flight is None:
                    flight = self._in_flight[key] = _InFlight()
            if leader:
                return self._lead(key, url, download, cancel, flight)
            path = self._follow(key, flight, cancel)
            if path is not None:
                return path

    @staticmethod
    def _follow(key: str, flight: _InFlight, cancel: CancellationToken | None) -> Optional[Path]:
        """Wait for the leader; None means the leader was cancelled and the caller should retry."""
        while not flight.event.wait(0.05):
            if cancel is not None and cancel.cancelled:
                raise CanceledError("Abort was signaled while waiting for image download")
        if isinstance(flight.error, CanceledError):
            if cancel is not None and cancel.cancelled:
                raise flight.error
            logger.debug(f"Image download {key} was canceled by another caller; retrying")
            return None
        if flight.error is not None:
            raise flight.error
        return flight.path

    def _lead(self, key: str, url: str, download: Downloader, cancel: CancellationToken | None,
              flight: _InFlight) -> Path:
        try:
            existing = self.find(key)
            if existing is not None:
                flight.path = existing
            else:
                logger.debug(f"Downloading image {key} from {url}")
                data, content_type = download(url, cancel)
                flight.path = self.store(key, data, content_type, url)
            return flight.path
        except BaseException as e:
            flight.error = e
            raise
        finally:
            with self._lock:
                self._in_flight.pop(key, None)
            flight.event.set()

    def clear(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)


__all__ = ["ObjectCache", "UserCache", "ImageCache", "image_extension", "DEFAULT_IMAGE_EXT"]
