from __future__ import annotations
from pathlib import Path
from typing import Union
import json
import os
import re
import sys
import tempfile

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename(key: str) -> str:
    """Map a cache key to a file name that is valid on every platform.

    Spotify ids are base62 and pass through unchanged; anything else has
    offending characters replaced.
    """
    name = _UNSAFE.sub("_", key)
    if not name or name in {".", ".."}:
        raise ValueError(f"Invalid cache key: {key!r}")
    return name


def atomic_write_bytes(path: Union[Path, str], data: bytes, mode: int | None = None) -> Path:
    """Write `data` to `path` via a temp file in the same directory and rename.

    Readers observe either the previous content or the new one, never a
    partial file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        if mode is not None and sys.platform != "win32":
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    return path


def atomic_write_text(path: Union[Path, str], text: str, mode: int | None = None) -> Path:
    return atomic_write_bytes(path, text.encode("utf-8"), mode=mode)


def atomic_write_json(path: Union[Path, str], data: object) -> Path:
    return atomic_write_text(path, json.dumps(data, ensure_ascii=False))


def is_temp_file(path: Path) -> bool:
    return path.name.startswith(".") and path.name.endswith(".tmp")


__all__ = ["safe_filename", "atomic_write_bytes", "atomic_write_text", "atomic_write_json", "is_temp_file"]
