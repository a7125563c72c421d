"""Tests for layered configuration loading (defaults <- .env <- env <- overrides)."""

import pytest
from sptf.config import coerce_scalar, deep_merge, load_config, load_typed_config


def test_defaults():
    cfg = load_config()
    assert cfg["network"]["rps_limit"] == 2
    assert cfg["spotify"]["redirect_path"] == "/callback"
    assert cfg["data_dir"] == "data"


def test_env_override(monkeypatch):
    monkeypatch.setenv("SPTF__NETWORK__PROXY", "http://proxy.local:3128")
    monkeypatch.setenv("SPTF__NETWORK__RPS_LIMIT", "5")
    monkeypatch.setenv("SPTF__LOGGING__WEBAPI_REQUEST", "true")
    cfg = load_config()
    assert cfg["network"]["proxy"] == "http://proxy.local:3128"
    assert cfg["network"]["rps_limit"] == 5
    assert cfg["logging"]["webapi_request"] is True


def test_dotenv_file(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\nSPTF__SPOTIFY__CLIENT_ID=abc123 # inline\nSPTF__PLAYBACK__PREFERRED_BITRATE='160k'\nOTHER=1\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("SPTF_ENABLE_DOTENV", "1")
    cfg = load_config(dotenv_path=env_file)
    assert cfg["spotify"]["client_id"] == "abc123"
    assert cfg["playback"]["preferred_bitrate"] == "160k"
    # explicit OS environment wins over .env
    monkeypatch.setenv("SPTF__SPOTIFY__CLIENT_ID", "from-env")
    assert load_config(dotenv_path=env_file)["spotify"]["client_id"] == "from-env"


def test_dotenv_skipped_under_pytest(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("SPTF__SPOTIFY__CLIENT_ID=abc123\n", encoding="utf-8")
    assert load_config(dotenv_path=env_file)["spotify"]["client_id"] is None


def test_overrides_win(monkeypatch, test_config):
    monkeypatch.setenv("SPTF__NETWORK__RPS_LIMIT", "5")
    cfg = load_config(test_config)
    assert cfg["network"]["rps_limit"] == 100
    # untouched nested keys survive the merge
    assert cfg["network"]["timeout_seconds"] == 30.0


def test_typed_config(test_config):
    cfg = load_typed_config(test_config)
    assert cfg.spotify.client_id == "test-client"
    assert cfg.spotify.redirect_port == 0
    assert cfg.playback.bitrate.label == "320k"


def test_typed_config_validation(test_config):
    test_config["network"]["rps_limit"] = 0
    with pytest.raises(ValueError, match="rps_limit"):
        load_typed_config(test_config)


def test_deep_merge_does_not_mutate():
    a = {"x": {"y": 1, "z": 2}}
    merged = deep_merge(a, {"x": {"y": 3}})
    assert merged == {"x": {"y": 3, "z": 2}}
    assert a == {"x": {"y": 1, "z": 2}}


@pytest.mark.parametrize("raw,expected", [
    ("true", True),
    ("No", False),
    ("42", 42),
    ("-3", -3),
    ("1.5", 1.5),
    ('["a", "b"]', ["a", "b"]),
    ("hello", "hello"),
])
def test_coerce_scalar(raw, expected):
    assert coerce_scalar(raw) == expected
