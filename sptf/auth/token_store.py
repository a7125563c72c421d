"""Refresh token persistence.

The refresh token is the only durable auth secret. It lives in a plain text
file under `<data_dir>/auth/refresh_token`, written atomically with 0600
permissions on POSIX systems. Access tokens are never written to disk.
"""
from __future__ import annotations
import hashlib
import logging
import threading
from pathlib import Path
from typing import Optional

from ..utils.fs import atomic_write_text

logger = logging.getLogger(__name__)

REFRESH_TOKEN_FILE = "refresh_token"


def token_identity(refresh_token: Optional[str]) -> Optional[str]:
    """Stable, non-secret fingerprint of a refresh token."""
    if not refresh_token:
        return None
    return hashlib.sha256(refresh_token.encode("utf-8")).hexdigest()[:16]


class RefreshTokenStore:
    def __init__(self, auth_dir: Path | str):
        self.path = Path(auth_dir) / REFRESH_TOKEN_FILE
        self._lock = threading.Lock()

    def load(self) -> Optional[str]:
        with self._lock:
            try:
                token = self.path.read_text(encoding="utf-8").strip()
            except FileNotFoundError:
                return None
            except OSError as e:
                logger.warning(f"Failed to read refresh token from {self.path}: {e}")
                return None
            return token or None

    def save(self, refresh_token: str) -> None:
        with self._lock:
            atomic_write_text(self.path, refresh_token, mode=0o600)
        logger.debug(f"Saved refresh token to {self.path}")

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                return
        logger.debug(f"Removed refresh token {self.path}")


__all__ = ["RefreshTokenStore", "token_identity"]
