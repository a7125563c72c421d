"""Authorization: PKCE login, access-token refresh and refresh-token storage."""

from .spotify_oauth import AccessToken, AuthState, WebApiAuthorizer
from .token_store import RefreshTokenStore, token_identity

__all__ = ["AccessToken", "AuthState", "WebApiAuthorizer", "RefreshTokenStore", "token_identity"]
