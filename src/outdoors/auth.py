"""Bearer token providers for the FHIR exchange.

The login ceremony (OAuth authorization code + PKCE) happens elsewhere.
These providers only hold the resulting tokens and, for OAuth, renew the
access token with the refresh-token grant shortly before it expires.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import httpx

from src.outdoors.base import AuthProvider, utc_now

logger = logging.getLogger("daylight.outdoors.auth")

# Refresh the access token this many seconds before it actually expires
_EXPIRY_BUFFER_SECONDS = 300


@dataclass
class OAuthTokens:
    """OAuth token pair returned after authentication or refresh.

    Attributes:
        access_token:  Bearer token for API calls.
        refresh_token: Long-lived token used to obtain a new access_token.
        expires_at:    UTC datetime when the access_token expires.
        token_type:    Token type, typically "Bearer".
        scope:         Granted OAuth scopes.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    token_type: str = "Bearer"
    scope: list[str] = field(default_factory=list)

    def needs_refresh(self, buffer_seconds: int = _EXPIRY_BUFFER_SECONDS) -> bool:
        """Return True if the access token expires within ``buffer_seconds``."""
        if self.expires_at is None:
            return False
        return (self.expires_at - utc_now()).total_seconds() < buffer_seconds


class StaticTokenProvider(AuthProvider):
    """A fixed bearer token (development, tests, service accounts)."""

    def __init__(self, token: str | None) -> None:
        self._token = token or None

    def current_access_token(self) -> str | None:
        return self._token

    async def refresh_if_needed(self) -> None:
        return None


class OAuthTokenProvider(AuthProvider):
    """Holds OAuth tokens and renews them with the refresh-token grant.

    Args:
        token_url:   OAuth token endpoint of the exchange.
        client_id:   Public client id registered with the exchange.
        tokens:      Tokens obtained by the login flow, if any yet.
        http_client: Optional pre-configured httpx client (for testing).
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        tokens: OAuthTokens | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token_url = token_url
        self._client_id = client_id
        self._tokens = tokens
        self._http_client = http_client

    @property
    def tokens(self) -> OAuthTokens | None:
        return self._tokens

    def set_tokens(self, tokens: OAuthTokens | None) -> None:
        self._tokens = tokens

    def current_access_token(self) -> str | None:
        if self._tokens is None:
            return None
        if self._tokens.expires_at is not None and self._tokens.expires_at <= utc_now():
            return None
        return self._tokens.access_token

    async def refresh_if_needed(self) -> None:
        tokens = self._tokens
        if tokens is None or not tokens.refresh_token or not tokens.needs_refresh():
            return
        try:
            self._tokens = await self._refresh(tokens.refresh_token)
            logger.info("Refreshed access token (expires %s)", self._tokens.expires_at)
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("Token refresh failed: %s. Using existing token.", exc)

    async def _refresh(self, refresh_token: str) -> OAuthTokens:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._client_id,
        }
        if self._http_client:
            response = await self._http_client.post(self._token_url, data=form)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(self._token_url, data=form)
        response.raise_for_status()
        data = response.json()

        expires_in = int(data.get("expires_in", 3600))
        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", refresh_token),
            expires_at=utc_now() + timedelta(seconds=expires_in),
            token_type=data.get("token_type", "Bearer"),
            scope=(data.get("scope") or "").split(),
        )
