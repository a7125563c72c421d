"""Spotify Web API HTTP engine.

Every catalog request goes through WebApiClient.get_json():

1. link the caller's abort token with the global shutdown token
2. wait for a rate limiter slot
3. attach a fresh bearer token
4. send; on HTTP 429 sleep `Retry-After` + 1 s and try again (3 attempts)
5. map the final response onto the error hierarchy or return parsed JSON

Spotify's `Retry-After` for this endpoint family is read as milliseconds.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Tuple
from urllib.parse import quote, urlsplit, urlunsplit

import requests
from tenacity import Retrying, RetryCallState, retry_if_result, stop_after_attempt

from ..errors import (
    HttpError,
    MalformedResponseError,
    ProtocolError,
    RateLimitedError,
    ServerError,
    TransientError,
)
from ..utils.cancellation import AbortManager, CancellationToken, sleep_for
from ..utils.logging_helpers import pretty_json
from ..utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

API_BASE = "https://api.spotify.com/v1/"
MAX_ATTEMPTS = 3
RETRY_AFTER_PADDING = 1.0
DOWNLOAD_CHUNK = 64 * 1024
EXCERPT_LIMIT = 2000


class TokenProvider(Protocol):
    def get_access_token(self, cancel: CancellationToken | None = None) -> str: ...


def build_proxies(proxy: str, username: str = "", password: str = "") -> Dict[str, str] | None:
    """requests-style proxies mapping; credentials are embedded only when both are set."""
    if not proxy:
        return None
    if "://" not in proxy:
        proxy = "http://" + proxy
    if username and password:
        parts = urlsplit(proxy)
        host = parts.netloc.rsplit("@", 1)[-1]
        netloc = f"{quote(username, safe='')}:{quote(password, safe='')}@{host}"
        proxy = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    return {"http": proxy, "https": proxy}


def retry_after_seconds(response: requests.Response) -> float:
    """Delay before the next attempt for a 429 response.

    Raises:
        ProtocolError: Retry-After header missing or not an integer
    """
    raw = response.headers.get("Retry-After")
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ProtocolError(f"HTTP 429 without a usable Retry-After header: {raw!r}") from None
    if value < 0:
        raise ProtocolError(f"HTTP 429 with negative Retry-After: {value}")
    return value / 1000.0 + RETRY_AFTER_PADDING


def _body_excerpt(response: requests.Response) -> str:
    try:
        return pretty_json(response.json())
    except ValueError:
        return (response.text or "")[:EXCERPT_LIMIT]


def parse_response(response: requests.Response) -> Dict[str, Any]:
    """Map a final response onto the error hierarchy; return the JSON object on 200."""
    status = response.status_code
    if status != 200:
        reason = response.reason or ""
        excerpt = _body_excerpt(response)
        if status == 429:
            raise RateLimitedError(status, reason, excerpt)
        if status >= 500:
            raise ServerError(status, reason, excerpt)
        raise HttpError(status, reason, excerpt)
    try:
        payload = response.json()
    except ValueError as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


class WebApiClient:
    """Authenticated, rate-limited, cancellable GET client for api.spotify.com."""

    def __init__(
        self,
        authorizer: TokenProvider,
        rate_limiter: RateLimiter | None = None,
        abort_manager: AbortManager | None = None,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        proxy: str = "",
        proxy_username: str = "",
        proxy_password: str = "",
        log_request: bool = False,
        log_response: bool = False,
        sleeper: Callable[[float, Optional[CancellationToken]], None] = sleep_for,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self._authorizer = authorizer
        self.rate_limiter = rate_limiter or RateLimiter()
        self.abort_manager = abort_manager or AbortManager()
        self._owns_session = session is None
        self._session = session or requests.Session()
        self.timeout = timeout
        self.proxies = build_proxies(proxy, proxy_username, proxy_password)
        self.log_request = log_request
        self.log_response = log_response
        self._sleeper = sleeper
        self.max_attempts = max_attempts

    @property
    def session(self) -> requests.Session:
        return self._session

    @staticmethod
    def build_url(path_or_url: str) -> str:
        """Resolve a path, or an absolute URL under API_BASE, against API_BASE.

        Raises:
            ProtocolError: Absolute URL on any other origin (the bearer token
                must not leave api.spotify.com)
        """
        if path_or_url.startswith(API_BASE):
            path_or_url = path_or_url[len(API_BASE):]
        elif urlsplit(path_or_url).scheme:
            raise ProtocolError(f"Refusing to send credentials to a URL outside {API_BASE}: {path_or_url}")
        return API_BASE + path_or_url.lstrip("/")

    # ---------------- Catalog requests -----------------
    def get_json(self, path_or_url: str, params: Dict[str, Any] | None = None,
                 cancel: CancellationToken | None = None) -> Dict[str, Any]:
        """GET a Web API resource and return its JSON object.

        Raises:
            CanceledError: `cancel` or global shutdown fired
            AuthRequiredError: No usable credentials
            RateLimitedError: Still 429 after the retry budget
            ProtocolError: 429 without a Retry-After header, or a URL outside API_BASE
            ServerError / TransientError: 5xx or network failure
            HttpError: Any other non-200 status
            MalformedResponseError: Body is not a JSON object
        """
        url = self.build_url(path_or_url)
        with self.abort_manager.linked_scope(cancel) as scope:
            response = self.get_response(url, params, scope)
            scope.raise_if_cancelled()
            payload = parse_response(response)
        if self.log_response:
            logger.info(f"Web API response: {url}\n{pretty_json(payload)}")
        return payload

    def get_response(self, url: str, params: Dict[str, Any] | None,
                     scope: CancellationToken) -> requests.Response:
        """Run the attempt loop; returns the last response (which may still be a 429)."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait_for_retry_after,
            retry=retry_if_result(lambda r: r.status_code == 429),
            sleep=lambda seconds: self._sleeper(seconds, scope),
            before_sleep=self._log_retry,
            retry_error_callback=self._on_retries_exhausted,
            reraise=True,
        )
        return retrying(self._attempt, url, params, scope)

    @staticmethod
    def _wait_for_retry_after(retry_state: RetryCallState) -> float:
        return retry_after_seconds(retry_state.outcome.result())

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(f"Rate limit reached: retrying in {delay * 1000:.0f} ms (attempt {retry_state.attempt_number})")

    @staticmethod
    def _on_retries_exhausted(retry_state: RetryCallState) -> requests.Response:
        logger.error(f"Rate limit reached: retry failed after {retry_state.attempt_number} attempts")
        return retry_state.outcome.result()

    def _attempt(self, url: str, params: Dict[str, Any] | None, scope: CancellationToken) -> requests.Response:
        scope.raise_if_cancelled()
        self.rate_limiter.acquire(scope)
        scope.raise_if_cancelled()
        token = self._authorizer.get_access_token(scope)
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.log_request:
            logger.info(f"Web API request: GET {url} params={params or {}}")
        try:
            response = self._session.get(url, params=params, headers=headers,
                                         timeout=self.timeout, proxies=self.proxies)
        except requests.RequestException as e:
            raise TransientError(f"Request to {url} failed: {e}") from e
        if response.status_code == 429:
            # validates the header before tenacity decides to wait on it
            retry_after_seconds(response)
        return response

    # ---------------- CDN downloads -----------------
    def download(self, url: str, cancel: CancellationToken | None = None) -> Tuple[bytes, str]:
        """Fetch raw bytes (album art, artist images); no auth header, no rate limit.

        Returns:
            (body, content_type)
        """
        with self.abort_manager.linked_scope(cancel) as scope:
            scope.raise_if_cancelled()
            try:
                response = self._session.get(url, timeout=self.timeout, proxies=self.proxies, stream=True)
            except requests.RequestException as e:
                raise TransientError(f"Download of {url} failed: {e}") from e
            try:
                if response.status_code != 200:
                    reason = response.reason or ""
                    if response.status_code >= 500:
                        raise ServerError(response.status_code, reason, "")
                    raise HttpError(response.status_code, reason, "")
                chunks = []
                try:
                    for chunk in response.iter_content(DOWNLOAD_CHUNK):
                        scope.raise_if_cancelled()
                        chunks.append(chunk)
                except requests.RequestException as e:
                    raise TransientError(f"Download of {url} failed: {e}") from e
                scope.raise_if_cancelled()
            finally:
                response.close()
        content_type = response.headers.get("Content-Type", "") or ""
        return b"".join(chunks), content_type

    def close(self) -> None:
        if self._owns_session:
            self._session.close()


__all__ = ["WebApiClient", "API_BASE", "MAX_ATTEMPTS", "build_proxies", "parse_response", "retry_after_seconds"]
