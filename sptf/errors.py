"""Exception hierarchy for the Spotify Web API core.

Every error raised by the core derives from SpotifyError so hosts can catch
one base class. Subclasses map onto the failure kinds callers act on:

- InvalidIdentifierError / UnsupportedTypeError: bad Spotify URI/URL input
- AuthRequiredError: user must (re)login
- AuthProtocolError: OAuth exchange went wrong (state mismatch, bad response)
- RateLimitedError: HTTP 429 persisted after the retry budget
- TransientError: network failure or 5xx
- HttpError: any other non-200 status
- MalformedResponseError: body is not the JSON shape we expect
- CanceledError: host abort or global shutdown
"""

from __future__ import annotations
from typing import Iterable


class SpotifyError(Exception):
    """Base class for all errors raised by the core."""


class InvalidIdentifierError(SpotifyError, ValueError):
    """Input is not a recognizable Spotify URI, URL or sptf:// path."""


class UnsupportedTypeError(InvalidIdentifierError):
    """Identifier is well-formed but names an object type we do not handle."""

    def __init__(self, object_type: str):
        super().__init__(f"Unsupported Spotify object: {object_type}")
        self.type = object_type


class CanceledError(SpotifyError):
    """Operation aborted by the host or by core shutdown."""


class AuthError(SpotifyError):
    """Base class for authorization failures."""


class AuthRequiredError(AuthError):
    """No usable refresh token; the user has to log in again."""


class MissingScopeError(AuthRequiredError):
    """Granted scopes do not cover the request; re-login to widen them."""


class AuthProtocolError(AuthError):
    """PKCE flow failed: state mismatch, missing code or malformed token response."""


class WebApiError(SpotifyError):
    """Base class for Web API request failures."""


class TransientError(WebApiError):
    """Network-level failure or server-side error; retrying later may succeed."""


class HttpError(WebApiError):
    """Non-200 response.

    Attributes:
        status: HTTP status code
        reason: Reason phrase returned by the server
        body_excerpt: Pretty-printed JSON body, or raw text when not JSON
    """

    def __init__(self, status: int, reason: str, body_excerpt: str = ""):
        message = f"{status}: {reason}"
        if body_excerpt:
            message += f"\nAdditional data: {body_excerpt}"
        super().__init__(message)
        self.status = status
        self.reason = reason
        self.body_excerpt = body_excerpt


class ServerError(HttpError, TransientError):
    """5xx response."""


class RateLimitedError(HttpError):
    """Still HTTP 429 after all retry attempts."""


class ProtocolError(WebApiError):
    """Server violated the protocol we rely on (e.g. 429 without Retry-After)."""


class MalformedResponseError(WebApiError):
    """Response body is not valid JSON, not an object, or lacks required fields."""


class NotFoundError(WebApiError):
    """Batch lookup returned null for some ids."""

    def __init__(self, ids: Iterable[str]):
        self.ids = sorted(set(ids))
        super().__init__(f"Spotify returned no object for: {', '.join(self.ids)}")


__all__ = [
    "SpotifyError",
    "InvalidIdentifierError",
    "UnsupportedTypeError",
    "CanceledError",
    "AuthError",
    "AuthRequiredError",
    "MissingScopeError",
    "AuthProtocolError",
    "WebApiError",
    "TransientError",
    "HttpError",
    "ServerError",
    "RateLimitedError",
    "ProtocolError",
    "MalformedResponseError",
    "NotFoundError",
]
