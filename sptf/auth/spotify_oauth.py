"""Spotify Web API authorization (OAuth2 Authorization Code with PKCE).

State machine::

    UNAUTHENTICATED --authenticate_clean--> PENDING --callback--> EXCHANGING --> AUTHENTICATED
    UNAUTHENTICATED --authenticate_with_refresh_token--> REFRESHING --> AUTHENTICATED
    AUTHENTICATED --token near expiry--> REFRESHING --> AUTHENTICATED
    PENDING --cancel_auth / timeout / error--> UNAUTHENTICATED
    any --clear_auth--> UNAUTHENTICATED

Only the refresh token is persisted (see token_store). Access tokens live in
memory and are refreshed under a single lock so concurrent callers share one
refresh request.
"""
from __future__ import annotations
import base64
import hashlib
import logging
import secrets
import ssl
import string
import threading
import time
import webbrowser
from dataclasses import dataclass, field
from enum import Enum
from http.server import HTTPServer, BaseHTTPRequestHandler
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional
from urllib.parse import urlencode, urlparse, parse_qs

import requests

from ..errors import (
    AuthProtocolError,
    AuthRequiredError,
    CanceledError,
    HttpError,
    ServerError,
    SpotifyError,
    TransientError,
)
from ..utils.cancellation import CancellationToken
from ..utils.logging_helpers import pretty_json
from .token_store import RefreshTokenStore, token_identity

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"

# Access tokens are treated as expired this many seconds early
ACCESS_TOKEN_SKEW = 30.0
TOKEN_REQUEST_TIMEOUT = 30

_VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"


def _code_verifier(length: int = 64) -> str:
    if not 43 <= length <= 128:
        raise ValueError(f"Invalid PKCE verifier length: {length}. Must be 43-128")
    return ''.join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(length))


def _code_challenge(verifier: str) -> str:
    h = hashlib.sha256(verifier.encode()).digest()
    return base64.urlsafe_b64encode(h).decode().rstrip('=')


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PENDING = "pending"
    EXCHANGING = "exchanging"
    REFRESHING = "refreshing"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class AccessToken:
    bearer: str
    expires_at: float
    scopes: FrozenSet[str] = field(default_factory=frozenset)

    def is_valid(self, now: float | None = None, skew: float = ACCESS_TOKEN_SKEW) -> bool:
        if now is None:
            now = time.time()
        return now < self.expires_at - skew


class OAuthServer(HTTPServer):
    """One-shot loopback server receiving the authorization redirect."""

    def __init__(self, server_address, RequestHandlerClass, redirect_path: str = "/"):
        super().__init__(server_address, RequestHandlerClass)
        self.redirect_path = redirect_path
        self.code: Optional[str] = None
        self.state: Optional[str] = None
        self.error: Optional[str] = None
        self.error_description: Optional[str] = None
        self.received = threading.Event()


class OAuthHandler(BaseHTTPRequestHandler):
    def do_GET(self):  # type: ignore[override]
        server: OAuthServer = self.server  # type: ignore[assignment]
        parsed = urlparse(self.path)
        qs = parse_qs(parsed.query)
        code = qs.get('code', [None])[0]
        error = qs.get('error', [None])[0]
        # Browsers also ask for /favicon.ico and friends; those must not end the flow
        if parsed.path != server.redirect_path or (code is None and error is None):
            logger.debug(f"Ignoring loopback request path={self.path}")
            self.send_response(404)
            self.end_headers()
            return
        if not server.received.is_set():
            server.code = code
            server.state = qs.get('state', [None])[0]
            server.error = error
            server.error_description = qs.get('error_description', [None])[0]
            server.received.set()
            logger.debug(f"Authorization callback received (error={error})")
        self.send_response(200)
        self.send_header('Content-Type', 'text/plain; charset=utf-8')
        self.end_headers()
        if error:
            self.wfile.write(b"Authorization failed. You may close this window.")
        else:
            self.wfile.write(b"Authorization complete. You may close this window.")

    def log_message(self, format, *args):  # route http.server chatter to debug log
        logger.debug("loopback: " + format, *args)


class WebApiAuthorizer:
    """Obtains and refreshes Spotify Web API access tokens."""

    def __init__(
        self,
        client_id: str | None,
        token_store: RefreshTokenStore,
        scope: str = "user-read-private",
        redirect_port: int = 9876,
        redirect_path: str = "/callback",
        redirect_scheme: str = "http",
        redirect_host: str = "127.0.0.1",
        cert_file: str | None = None,
        key_file: str | None = None,
        timeout_seconds: int = 300,
        session: requests.Session | None = None,
        open_browser: Callable[[str], Any] = webbrowser.open,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id
        self.scope = scope
        self.redirect_port = redirect_port
        self.redirect_scheme = redirect_scheme
        self.redirect_host = redirect_host
        # Normalize redirect path; ensure starts with '/'
        if not redirect_path.startswith('/'):
            redirect_path = '/' + redirect_path
        self.redirect_path = redirect_path
        self.cert_file = cert_file
        self.key_file = key_file
        self.timeout_seconds = timeout_seconds
        self._store = token_store
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._open_browser = open_browser
        self._clock = clock

        self._state = AuthState.UNAUTHENTICATED
        self._token: Optional[AccessToken] = None
        self._refresh_token: Optional[str] = token_store.load()
        self._state_lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._pending_cancel: Optional[CancellationToken] = None
        self._auth_thread: Optional[threading.Thread] = None
        self._listeners: List[Callable[[Optional[str]], None]] = []
        self.last_error: Optional[BaseException] = None

    # ---------------- State -----------------
    @property
    def state(self) -> AuthState:
        return self._state

    def is_authenticated(self) -> bool:
        return self._state in (AuthState.AUTHENTICATED, AuthState.REFRESHING)

    def has_refresh_token(self) -> bool:
        return self._current_refresh_token() is not None

    def refresh_token_identity(self) -> Optional[str]:
        return token_identity(self._current_refresh_token())

    @property
    def scopes(self) -> FrozenSet[str]:
        token = self._token
        return token.scopes if token else frozenset()

    def add_refresh_token_listener(self, callback: Callable[[Optional[str]], None]) -> None:
        """Register `callback(identity)` fired whenever the refresh token changes or is cleared."""
        self._listeners.append(callback)

    def _current_refresh_token(self) -> Optional[str]:
        return self._refresh_token

    def _set_state(self, state: AuthState) -> None:
        with self._state_lock:
            self._state = state

    def _notify(self, refresh_token: Optional[str]) -> None:
        identity = token_identity(refresh_token)
        for callback in list(self._listeners):
            try:
                callback(identity)
            except Exception:
                logger.exception("Refresh token listener failed")

    def build_redirect_uri(self, port: int | None = None) -> str:
        return f"{self.redirect_scheme}://{self.redirect_host}:{port or self.redirect_port}{self.redirect_path}"

    # ---------------- Access tokens -----------------
    def get_access_token(self, cancel: CancellationToken | None = None) -> str:
        """Return a valid bearer token, refreshing it if needed.

        Raises:
            AuthRequiredError: No refresh token, or Spotify rejected it
            TransientError: Token endpoint unreachable
            CanceledError: `cancel` fired
        """
        if cancel is not None:
            cancel.raise_if_cancelled()
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token.bearer
        with self._refresh_lock:
            # Another caller may have refreshed while we waited for the lock
            token = self._token
            if token is not None and token.is_valid(self._clock()):
                return token.bearer
            refresh_token = self._current_refresh_token()
            if not refresh_token:
                raise AuthRequiredError("Not logged in to Spotify Web API; please log in")
            return self._refresh_locked(refresh_token, cancel).bearer

    def authenticate_with_refresh_token(self, cancel: CancellationToken | None = None, refresh_token: str | None = None) -> None:
        """Mint a fresh access token from `refresh_token` (default: the stored one)."""
        refresh_token = refresh_token or self._current_refresh_token()
        if not refresh_token:
            raise AuthRequiredError("No refresh token available; please log in")
        with self._refresh_lock:
            self._refresh_locked(refresh_token, cancel)

    def _refresh_locked(self, refresh_token: str, cancel: CancellationToken | None) -> AccessToken:
        with self._state_lock:
            previous = self._state
            self._state = AuthState.REFRESHING
        logger.debug("Refreshing Spotify access token")
        try:
            payload = self._post_token({
                'grant_type': 'refresh_token',
                'refresh_token': refresh_token,
                'client_id': self.client_id,
            }, cancel)
            return self._accept_token_response(payload, refresh_token)
        except AuthRequiredError:
            logger.warning("Refresh token was rejected by Spotify; login required")
            self._drop_credentials()
            raise
        except BaseException:
            with self._state_lock:
                if self._state is AuthState.REFRESHING:
                    self._state = previous if previous is not AuthState.REFRESHING else AuthState.UNAUTHENTICATED
            raise

    # ---------------- Token endpoint -----------------
    def _post_token(self, data: Dict[str, Any], cancel: CancellationToken | None) -> Dict[str, Any]:
        if not self.client_id:
            raise AuthRequiredError("Spotify client_id is not configured (set SPTF__SPOTIFY__CLIENT_ID)")
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            resp = self._session.post(TOKEN_URL, data=data, timeout=TOKEN_REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise TransientError(f"Token request failed: {e}") from e
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if resp.status_code != 200:
            error = payload.get('error') if isinstance(payload, dict) else None
            if error == 'invalid_grant':
                raise AuthRequiredError(f"Spotify rejected the grant: {payload.get('error_description') or error}")
            excerpt = pretty_json(payload) if payload is not None else resp.text
            if resp.status_code >= 500:
                raise ServerError(resp.status_code, resp.reason or "", excerpt)
            raise HttpError(resp.status_code, resp.reason or "", excerpt)
        if not isinstance(payload, dict) or not payload.get('access_token'):
            raise AuthProtocolError("Malformed token response: missing `access_token`")
        return payload

    def _accept_token_response(self, payload: Dict[str, Any], previous_refresh: Optional[str]) -> AccessToken:
        try:
            expires_in = int(payload.get('expires_in', 3600))
        except (TypeError, ValueError) as e:
            raise AuthProtocolError(f"Malformed token response: bad `expires_in` {payload.get('expires_in')!r}") from e
        scope = payload.get('scope') or ''
        token = AccessToken(
            bearer=payload['access_token'],
            expires_at=self._clock() + expires_in,
            scopes=frozenset(scope.split()),
        )
        # Spotify may omit refresh_token on refresh; keep the old one
        refresh_token = payload.get('refresh_token') or previous_refresh
        if not refresh_token:
            raise AuthProtocolError("Malformed token response: missing `refresh_token`")
        changed = refresh_token != self._refresh_token
        if changed:
            self._store.save(refresh_token)
        with self._state_lock:
            self._token = token
            self._refresh_token = refresh_token
            self._state = AuthState.AUTHENTICATED
        logger.debug(f"Access token acquired (expires_in={expires_in}, scopes={sorted(token.scopes)})")
        if changed:
            self._notify(refresh_token)
        return token

    def _drop_credentials(self) -> None:
        with self._state_lock:
            had_refresh = self._refresh_token is not None
            self._token = None
            self._refresh_token = None
            self._state = AuthState.UNAUTHENTICATED
        self._store.clear()
        if had_refresh:
            self._notify(None)

    # ---------------- PKCE flow -----------------
    def authenticate_clean(self, on_done: Callable[[], Any]) -> None:
        """Start the browser-based PKCE flow on a background thread.

        `on_done` runs once the flow reaches a terminal state, successful or
        not; check is_authenticated() and last_error afterwards.

        Raises:
            AuthProtocolError: A flow is already in progress
        """
        cancel = self._begin_pending()

        def _run() -> None:
            try:
                self._run_clean_flow(cancel)
            except SpotifyError as e:
                logger.warning(f"Spotify Web API login failed: {e}")
            except Exception:
                logger.exception("Spotify Web API login failed")
            finally:
                on_done()

        self._auth_thread = threading.Thread(target=_run, name="sptf-pkce", daemon=True)
        self._auth_thread.start()

    def authenticate_clean_blocking(self, cancel: CancellationToken | None = None) -> None:
        """Run the PKCE flow on the calling thread; raises on failure."""
        pending = self._begin_pending()
        handle = cancel.register(pending.cancel) if cancel is not None else None
        try:
            self._run_clean_flow(pending)
        finally:
            if cancel is not None and handle is not None:
                cancel.unregister(handle)

    def authenticate_clean_cleanup(self, timeout: float | None = None) -> None:
        """Join the background login thread started by authenticate_clean()."""
        thread = self._auth_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if not thread.is_alive():
                self._auth_thread = None

    def cancel_auth(self) -> None:
        pending = self._pending_cancel
        if pending is not None:
            logger.debug("Canceling pending Spotify authorization")
            pending.cancel()

    def _begin_pending(self) -> CancellationToken:
        with self._state_lock:
            if self._state in (AuthState.PENDING, AuthState.EXCHANGING):
                raise AuthProtocolError("Authorization already in progress")
            self._state = AuthState.PENDING
            self._pending_cancel = CancellationToken("pkce")
            self.last_error = None
            return self._pending_cancel

    def _run_clean_flow(self, cancel: CancellationToken) -> None:
        try:
            self._clean_flow(cancel)
        except BaseException as e:
            self.last_error = e
            with self._state_lock:
                if self._state in (AuthState.PENDING, AuthState.EXCHANGING):
                    self._state = AuthState.UNAUTHENTICATED
            raise
        finally:
            self._pending_cancel = None

    def _clean_flow(self, cancel: CancellationToken) -> None:
        if not self.client_id:
            raise AuthRequiredError("Spotify client_id is not configured (set SPTF__SPOTIFY__CLIENT_ID)")
        verifier = _code_verifier()
        challenge = _code_challenge(verifier)
        state = base64.urlsafe_b64encode(secrets.token_bytes(12)).decode().rstrip('=')

        server = self._create_server()
        thread = threading.Thread(target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
        thread.start()
        try:
            redirect_uri = self.build_redirect_uri(server.server_port)
            params = {
                "client_id": self.client_id,
                "response_type": "code",
                "redirect_uri": redirect_uri,
                "scope": self.scope,
                "code_challenge_method": "S256",
                "code_challenge": challenge,
                "state": state,
            }
            url = f"{AUTH_URL}?{urlencode(params)}"
            logger.info(f"Opening browser for Spotify authorization (redirect: {redirect_uri})")
            self._open_browser(url)
            self._wait_for_callback(server, cancel)
        finally:
            server.shutdown()
            server.server_close()
            thread.join(timeout=5)

        if server.error:
            desc = server.error_description or ''
            raise AuthProtocolError(f"Spotify authorization error: {server.error} {desc}".strip())
        if server.state != state:
            raise AuthProtocolError("Authorization state mismatch; possible stale or forged redirect")
        if not server.code:
            raise AuthProtocolError("Authorization redirect did not contain a code")

        self._set_state(AuthState.EXCHANGING)
        payload = self._post_token({
            "client_id": self.client_id,
            "grant_type": "authorization_code",
            "code": server.code,
            "redirect_uri": redirect_uri,
            "code_verifier": verifier,
        }, cancel)
        self._accept_token_response(payload, None)
        logger.info("Spotify Web API login complete")

    def _create_server(self) -> OAuthServer:
        server = OAuthServer((self.redirect_host, self.redirect_port), OAuthHandler, self.redirect_path)
        if self.redirect_scheme.lower() == 'https':
            from .certutil import ensure_self_signed

            cert_file = self.cert_file or 'cert.pem'
            key_file = self.key_file or 'key.pem'
            if not (Path(cert_file).exists() and Path(key_file).exists()):
                try:
                    ensure_self_signed(cert_file, key_file, host=self.redirect_host)
                except RuntimeError:
                    server.server_close()
                    raise
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            context.load_cert_chain(certfile=cert_file, keyfile=key_file)
            server.socket = context.wrap_socket(server.socket, server_side=True)
        return server

    def _wait_for_callback(self, server: OAuthServer, cancel: CancellationToken) -> None:
        deadline = time.monotonic() + self.timeout_seconds
        while not server.received.wait(0.05):
            if cancel.cancelled:
                raise CanceledError("Authorization canceled")
            if time.monotonic() > deadline:
                raise AuthProtocolError("Authorization timeout expired.")

    # ---------------- Logout / teardown -----------------
    def clear_auth(self) -> None:
        """Forget all credentials, including the persisted refresh token."""
        self.cancel_auth()
        with self._refresh_lock:
            self._drop_credentials()
        logger.info("Spotify Web API credentials cleared")

    def close(self) -> None:
        self.cancel_auth()
        self.authenticate_clean_cleanup(timeout=5)
        if self._owns_session:
            self._session.close()


__all__ = ["WebApiAuthorizer", "AccessToken", "AuthState", "AUTH_URL", "TOKEN_URL", "ACCESS_TOKEN_SKEW"]
