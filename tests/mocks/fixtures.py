from __future__ import annotations
import pytest

from sptf.utils.cancellation import AbortManager
from sptf.utils.rate_limiter import RateLimiter
from sptf.webapi.backend import WebApiBackend
from sptf.webapi.client import WebApiClient

from .mock_spotify import FakeSession, StubAuthorizer


class RecordingSleeper:
    """Replaces sleep_for: records requested delays, honors cancellation."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds, token=None):
        self.delays.append(seconds)
        if token is not None:
            token.raise_if_cancelled()


@pytest.fixture
def sleeper():
    return RecordingSleeper()


@pytest.fixture
def stub_auth():
    return StubAuthorizer()


@pytest.fixture
def make_client(stub_auth, sleeper):
    """Factory: WebApiClient over a FakeSession with a generous rate limit."""
    def _make(session: FakeSession, **kwargs) -> WebApiClient:
        kwargs.setdefault("rate_limiter", RateLimiter(capacity=1000, period=1.0))
        kwargs.setdefault("abort_manager", AbortManager())
        kwargs.setdefault("sleeper", sleeper)
        return WebApiClient(stub_auth, session=session, **kwargs)
    return _make


@pytest.fixture
def make_backend(tmp_path, stub_auth, make_client):
    """Factory: WebApiBackend rooted in tmp_path with the stub authorizer."""
    def _make(session: FakeSession, **kwargs) -> WebApiBackend:
        client = make_client(session)
        return WebApiBackend(tmp_path / "data", stub_auth, client, **kwargs)
    return _make
