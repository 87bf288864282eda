"""
OAuth module for the OAuth2 Authorization Code flow against the backend's
authorization server.

Holds the only OAuth credential state of the process. Tokens live in memory
and are lost on restart.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from ...config import OAUTH_SCOPE, REQUEST_TIMEOUT, TOKEN_REFRESH_BUFFER, mask_secret
from ...errors import MissingRefreshTokenError, NoTokenError, OAuthError
from ...schemas.oauth import OAuthTokenResponse
from .credentials import AuthConfig

logger = logging.getLogger(__name__)


class TokenState(str, Enum):
    """Lifecycle state of the stored token."""

    NO_TOKEN = "no-token"
    VALID = "valid"
    EXPIRING = "expiring"
    EXPIRED = "expired"


@dataclass(frozen=True)
class StoredToken:
    """An OAuth2 access/refresh token pair. ``expires_at`` is epoch millis."""

    access_token: str
    expires_at: int
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at <= now_ms

    def expires_at_iso(self) -> str:
        return datetime.fromtimestamp(self.expires_at / 1000, tz=timezone.utc).isoformat()

    def summary(self) -> Dict[str, Any]:
        """Token details safe to show to API clients."""
        return {
            "type": self.token_type,
            "expiresAt": self.expires_at_iso(),
            "hasRefreshToken": bool(self.refresh_token),
            "scope": self.scope,
        }


class OAuth2TokenManager:
    """
    Owns the lifecycle of the OAuth2 token pair.

    Refresh is lazy: ``get_valid_access_token`` renews a token that expires
    within the safety buffer instead of running a background timer.
    """

    def __init__(
        self,
        config: AuthConfig,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._clock = clock
        self._transport = transport
        self._token: Optional[StoredToken] = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _require_oauth_config(self) -> None:
        if not self._config.client_id or not self._config.client_secret:
            raise OAuthError("OAuth2 configuration is not available")

    def get_authorization_url(self, state: Optional[str] = None) -> str:
        """
        Build the authorization redirect URL.

        Args:
            state: CSRF state to bind the callback to

        Returns:
            Absolute URL of the authorize endpoint with query parameters
        """
        self._require_oauth_config()
        params = {
            "client_id": self._config.client_id,
            "response_type": "code",
            "redirect_uri": self._config.redirect_uri or "",
            "scope": OAUTH_SCOPE,
            "response_mode": "query",
        }
        if state:
            params["state"] = state
        url = f"{self._config.authorize_url}?{urlencode(params)}"
        logger.info(
            f"Built authorization URL (client_id={mask_secret(self._config.client_id)}, "
            f"redirect_uri={self._config.redirect_uri})"
        )
        return url

    async def _post_token_request(self, form: Dict[str, str]) -> OAuthTokenResponse:
        """POST a form-encoded grant to the token endpoint."""
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self._config.token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as e:
            raise OAuthError(f"Token request timed out: {e}") from e
        except httpx.RequestError as e:
            raise OAuthError(f"Token request failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = resp.text

        if resp.status_code != 200:
            raise OAuthError(
                f"OAuth2 token request failed ({resp.status_code}): {payload}",
                payload=payload,
                status_code=resp.status_code,
            )

        try:
            return OAuthTokenResponse.model_validate(payload)
        except ValidationError as e:
            raise OAuthError(
                f"Invalid token response: {e}",
                payload=payload,
                status_code=resp.status_code,
            ) from e

    def _store(
        self, data: OAuthTokenResponse, fallback_refresh: Optional[str] = None
    ) -> StoredToken:
        self._token = StoredToken(
            access_token=data.access_token,
            refresh_token=data.refresh_token or fallback_refresh,
            expires_at=self._now_ms() + data.expires_in * 1000,
            token_type=data.token_type,
            scope=data.scope,
        )
        return self._token

    async def exchange_code_for_token(self, code: str) -> StoredToken:
        """
        Exchange an authorization code for a token pair.

        The stored token is replaced only on success.

        Args:
            code: Authorization code from the callback

        Returns:
            The new StoredToken

        Raises:
            OAuthError: With the authorization server's error payload
        """
        self._require_oauth_config()
        logger.info(f"Exchanging authorization code {mask_secret(code, 10)}")
        data = await self._post_token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._config.redirect_uri or "",
                "client_id": self._config.client_id,
                "client_secret": self._config.client_secret,
            }
        )
        token = self._store(data)
        logger.info(
            f"Access token obtained (expires_in={data.expires_in}s, "
            f"refresh_token={'yes' if data.refresh_token else 'no'}, scope={data.scope})"
        )
        return token

    async def refresh_access_token(self) -> StoredToken:
        """
        Renew the access token with the stored refresh token.

        Keeps the previous refresh token when the server does not rotate it.
        Any failure clears the stored token.

        Returns:
            The refreshed StoredToken

        Raises:
            MissingRefreshTokenError: If there is nothing to refresh with
            OAuthError: If the token endpoint rejects the refresh
        """
        current = self._token
        if current is None or not current.refresh_token:
            raise MissingRefreshTokenError("No refresh token available")
        self._require_oauth_config()

        logger.info("Refreshing OAuth2 access token")
        try:
            data = await self._post_token_request(
                {
                    "grant_type": "refresh_token",
                    "refresh_token": current.refresh_token,
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                }
            )
        except OAuthError as e:
            logger.error(f"Token refresh failed, clearing stored token: {e}")
            self._token = None
            raise

        token = self._store(data, fallback_refresh=current.refresh_token)
        logger.info(f"Access token refreshed (expires_in={data.expires_in}s)")
        return token

    async def get_valid_access_token(self) -> str:
        """
        Return an access token that will not expire within the buffer.

        Raises:
            NoTokenError: If the authorization flow has not been completed
            OAuthError: If a needed refresh fails
        """
        if self._token is None:
            raise NoTokenError(
                "No OAuth2 token available. Complete the authorization flow first."
            )
        if self._token.expires_at <= self._now_ms() + TOKEN_REFRESH_BUFFER * 1000:
            logger.info("Access token expires soon, refreshing")
            await self.refresh_access_token()
        return self._token.access_token

    def has_valid_token(self) -> bool:
        """True if a token is stored and not yet expired (no buffer)."""
        return self._token is not None and not self._token.is_expired(self._now_ms())

    def token_state(self) -> TokenState:
        if self._token is None:
            return TokenState.NO_TOKEN
        now = self._now_ms()
        if self._token.is_expired(now):
            return TokenState.EXPIRED
        if self._token.expires_at <= now + TOKEN_REFRESH_BUFFER * 1000:
            return TokenState.EXPIRING
        return TokenState.VALID

    def get_stored_token(self) -> Optional[StoredToken]:
        return self._token

    def set_stored_token(self, token: StoredToken) -> None:
        """Install a token obtained elsewhere."""
        self._token = token
        logger.info(
            f"OAuth2 token set (refresh_token={'yes' if token.refresh_token else 'no'}, "
            f"expires_at={token.expires_at})"
        )

    def clear_token(self) -> None:
        self._token = None
        logger.info("OAuth2 token cleared")
