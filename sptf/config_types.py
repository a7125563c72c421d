"""Typed configuration dataclasses for sptf-webapi.

Provides strongly-typed configuration objects that are handed to the core
at construction time (the core never reads configuration on its own).
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from enum import IntEnum
from pathlib import Path
from typing import Dict, Any


class BitrateSettings(IntEnum):
    """Preferred streaming bitrate; values match the audio backend's codes."""
    BITRATE_160K = 0
    BITRATE_320K = 1
    BITRATE_96K = 2

    @classmethod
    def from_label(cls, label: str | int) -> BitrateSettings:
        if isinstance(label, int) and not isinstance(label, bool):
            return cls(label)
        labels = {"96k": cls.BITRATE_96K, "160k": cls.BITRATE_160K, "320k": cls.BITRATE_320K}
        key = str(label).strip().lower()
        if key not in labels:
            raise ValueError(f"Invalid preferred_bitrate: {label}. Must be one of 96k, 160k, 320k")
        return labels[key]

    @property
    def label(self) -> str:
        return {0: "160k", 1: "320k", 2: "96k"}[int(self)]


@dataclass
class SpotifyConfig:
    """Spotify OAuth (PKCE) configuration."""
    client_id: str | None = None
    redirect_scheme: str = "http"
    redirect_host: str = "127.0.0.1"
    redirect_port: int = 9876
    redirect_path: str = "/callback"
    scope: str = "user-read-private playlist-read-private playlist-read-collaborative user-library-read"
    timeout_seconds: int = 300
    cert_file: str = "cert.pem"
    key_file: str = "key.pem"

    def __post_init__(self) -> None:
        # Environment coercion may turn numeric-looking ids into ints
        if self.client_id is not None:
            self.client_id = str(self.client_id)

    def validate(self) -> None:
        """Validate value ranges.

        Raises:
            ValueError: If a field is out of range
        """
        if not isinstance(self.redirect_port, int) or self.redirect_port < 0 or self.redirect_port > 65535:
            raise ValueError(f"Invalid redirect_port: {self.redirect_port}. Must be integer 0-65535")
        if self.redirect_scheme not in ('http', 'https'):
            raise ValueError(f"Invalid redirect_scheme: {self.redirect_scheme}. Must be 'http' or 'https'")
        if not isinstance(self.timeout_seconds, int) or self.timeout_seconds < 1:
            raise ValueError(f"Invalid timeout_seconds: {self.timeout_seconds}. Must be positive integer")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NetworkConfig:
    """Proxy, transport timeout and request rate."""
    proxy: str = ""
    proxy_username: str = ""
    proxy_password: str = ""
    timeout_seconds: float = 30.0
    rps_limit: int = 2

    def __post_init__(self) -> None:
        self.proxy = str(self.proxy or "")
        self.proxy_username = str(self.proxy_username or "")
        self.proxy_password = str(self.proxy_password or "")

    def validate(self) -> None:
        if not isinstance(self.rps_limit, int) or self.rps_limit < 1:
            raise ValueError(f"Invalid rps_limit: {self.rps_limit}. Must be positive integer")
        if self.timeout_seconds <= 0:
            raise ValueError(f"Invalid timeout_seconds: {self.timeout_seconds}. Must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LoggingConfig:
    """Web API request/response tracing switches."""
    webapi_request: bool = False
    webapi_response: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CacheConfig:
    """Object cache sizing."""
    memory_entries: int = 512
    max_disk_entries: int = 0  # 0 = unbounded

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PlaybackConfig:
    """Settings forwarded to the audio backend; not used by the Web API core."""
    preferred_bitrate: str = "320k"

    @property
    def bitrate(self) -> BitrateSettings:
        return BitrateSettings.from_label(self.preferred_bitrate)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AppConfig:
    """Root configuration with all subsections."""
    log_level: str = "INFO"
    data_dir: str = "data"
    spotify: SpotifyConfig = field(default_factory=SpotifyConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    def validate(self) -> None:
        """Validate every section.

        Raises:
            ValueError: On the first invalid value
        """
        self.spotify.validate()
        self.network.validate()
        self.playback.bitrate  # noqa: B018 - raises ValueError on unknown labels

    def to_dict(self) -> Dict[str, Any]:
        """Convert to nested dictionary.

        Returns:
            Nested dict structure matching config format
        """
        return {
            "log_level": self.log_level,
            "data_dir": self.data_dir,
            "spotify": self.spotify.to_dict(),
            "network": self.network.to_dict(),
            "logging": self.logging.to_dict(),
            "cache": self.cache.to_dict(),
            "playback": self.playback.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AppConfig:
        """Create typed config from dictionary.

        Args:
            data: Dictionary config (from load_config)

        Returns:
            Typed AppConfig instance
        """
        return cls(
            log_level=data.get("log_level", "INFO"),
            data_dir=str(data.get("data_dir", "data")),
            spotify=SpotifyConfig(**data.get("spotify", {})),
            network=NetworkConfig(**data.get("network", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            cache=CacheConfig(**data.get("cache", {})),
            playback=PlaybackConfig(**data.get("playback", {})),
        )


__all__ = [
    "AppConfig",
    "BitrateSettings",
    "SpotifyConfig",
    "NetworkConfig",
    "LoggingConfig",
    "CacheConfig",
    "PlaybackConfig",
]
