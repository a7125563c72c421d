"""Unit tests for typed configuration dataclasses."""

import pytest
from sptf.config_types import (
    AppConfig,
    BitrateSettings,
    CacheConfig,
    NetworkConfig,
    PlaybackConfig,
    SpotifyConfig,
)


def test_spotify_config_defaults():
    config = SpotifyConfig()
    assert config.client_id is None
    assert config.redirect_port == 9876
    assert "user-read-private" in config.scope


def test_numeric_client_id_coerced_to_str():
    assert SpotifyConfig(client_id=12345).client_id == "12345"


@pytest.mark.parametrize("kwargs", [
    {"redirect_port": -1},
    {"redirect_port": 70000},
    {"redirect_scheme": "ftp"},
    {"timeout_seconds": 0},
])
def test_spotify_config_validation(kwargs):
    with pytest.raises(ValueError):
        SpotifyConfig(**kwargs).validate()


def test_ephemeral_port_allowed():
    SpotifyConfig(redirect_port=0).validate()


def test_network_config_validation():
    NetworkConfig().validate()
    with pytest.raises(ValueError):
        NetworkConfig(rps_limit=0).validate()
    with pytest.raises(ValueError):
        NetworkConfig(timeout_seconds=0).validate()


def test_network_config_coerces_credentials():
    cfg = NetworkConfig(proxy=None, proxy_username=123, proxy_password=None)
    assert (cfg.proxy, cfg.proxy_username, cfg.proxy_password) == ("", "123", "")


@pytest.mark.parametrize("label,expected", [
    ("96k", BitrateSettings.BITRATE_96K),
    ("160K", BitrateSettings.BITRATE_160K),
    ("320k", BitrateSettings.BITRATE_320K),
    (1, BitrateSettings.BITRATE_320K),
])
def test_bitrate_labels(label, expected):
    assert BitrateSettings.from_label(label) is expected
    assert BitrateSettings.from_label(expected.label) is expected


def test_bitrate_codes_match_audio_backend():
    assert [int(b) for b in (BitrateSettings.BITRATE_160K, BitrateSettings.BITRATE_320K, BitrateSettings.BITRATE_96K)] == [0, 1, 2]


def test_invalid_bitrate_rejected_by_app_validate():
    cfg = AppConfig(playback=PlaybackConfig(preferred_bitrate="128k"))
    with pytest.raises(ValueError, match="preferred_bitrate"):
        cfg.validate()


def test_app_config_round_trip():
    cfg = AppConfig(data_dir="/tmp/x", cache=CacheConfig(memory_entries=10))
    again = AppConfig.from_dict(cfg.to_dict())
    assert again == cfg
    assert again.data_path.as_posix() == "/tmp/x"
