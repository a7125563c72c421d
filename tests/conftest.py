"""Pytest fixtures for test configuration.

Global test safety measures:
 - Monkeypatch webbrowser.open to a no-op to guard against accidental flows
 - Keep SPTF__* variables from the developer's shell out of config tests
"""
import os
import webbrowser
from pathlib import Path
from typing import Any, Dict

import pytest

from .mocks.fixtures import *  # noqa: F401,F403


def pytest_sessionstart(session):  # type: ignore[no-untyped-def]
    webbrowser.open = lambda *a, **k: True  # type: ignore[assignment]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("SPTF__") or key == "SPTF_ENABLE_DOTENV":
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def test_config(tmp_path: Path) -> Dict[str, Any]:
    """Provide a minimal test configuration as a dict.

    Paths are isolated to tmp_path; pass it as `overrides` to load_config().
    """
    return {
        'log_level': 'DEBUG',
        'data_dir': str(tmp_path / 'data'),
        'spotify': {
            'client_id': 'test-client',
            'redirect_scheme': 'http',
            'redirect_host': '127.0.0.1',
            'redirect_port': 0,
            'redirect_path': '/callback',
            'scope': 'user-read-private playlist-read-private',
            'timeout_seconds': 5,
            'cert_file': str(tmp_path / 'cert.pem'),
            'key_file': str(tmp_path / 'key.pem'),
        },
        'network': {
            'rps_limit': 100,
        },
    }
