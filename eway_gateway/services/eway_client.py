"""
eWay-CRM API Client - Handles all communication with the backend RPC service.

One instance owns the only authenticated session of the process: the HTTP
channel, the session id and the bearer header. Every remote call goes
through ``call_method``, which logs in on demand and re-authenticates once
when the backend reports an expired session or access token.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from ..config import API_BASE_PATH, REQUEST_TIMEOUT, mask_secret
from ..errors import (
    AuthenticationError,
    GatewayError,
    NoTokenError,
    OAuthError,
    TransportError,
)
from ..schemas.eway import EwayApiResult
from .auth.credentials import AuthConfig
from .auth.oauth import OAuth2TokenManager

logger = logging.getLogger(__name__)

# Re-logins allowed per call after an auth-failure result code
MAX_AUTH_RETRIES = 1

LOGIN_METHOD = "LogIn"
LOGOUT_METHOD = "LogOut"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class EwaySessionClient:
    """
    Session-holding client for the backend ``API.svc`` endpoints.

    Concurrent callers that need a login share one in-flight attempt.
    """

    def __init__(
        self,
        config: AuthConfig,
        token_manager: OAuth2TokenManager,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._tokens = token_manager
        self._http = httpx.AsyncClient(
            base_url=config.service_url,
            timeout=httpx.Timeout(REQUEST_TIMEOUT),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )
        self.state = ConnectionState.DISCONNECTED
        self._session_id: Optional[str] = None
        self._logged_in = False
        self._login_task: Optional[asyncio.Task] = None
        # Incremented by every successful login and every invalidation
        self._login_generation = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_connected(self) -> bool:
        """True if logged in and holding a session id or a valid OAuth2 token."""
        if not self._logged_in:
            return False
        return bool(self._session_id) or self._tokens.has_valid_token()

    def get_session_id(self) -> Optional[str]:
        return self._session_id

    def has_bearer_header(self) -> bool:
        return "Authorization" in self._http.headers

    def get_auth_status(self) -> Dict[str, Any]:
        """Diagnostic snapshot of the session. Never contains raw secrets."""
        return {
            "authMode": self._config.mode.value,
            "state": self.state.value,
            "connected": self.is_connected(),
            "sessionId": mask_secret(self._session_id),
            "hasValidToken": self._tokens.has_valid_token(),
            "tokenState": self._tokens.token_state().value,
            "hasBearerHeader": self.has_bearer_header(),
        }

    def _set_bearer(self, credential: str) -> None:
        self._http.headers["Authorization"] = f"Bearer {credential}"

    def _drop_bearer(self) -> None:
        self._http.headers.pop("Authorization", None)

    def _reset_session(self) -> None:
        """Forget the local session without touching the OAuth2 token."""
        self._session_id = None
        self._logged_in = False
        self._drop_bearer()
        self.state = ConnectionState.DISCONNECTED

    def _invalidate_credentials(self) -> None:
        """Forget the session and the OAuth2 token after an auth failure."""
        self._reset_session()
        self._tokens.clear_token()
        self._login_generation += 1

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(self, method: str, body: Dict[str, Any]) -> EwayApiResult:
        """
        POST a JSON body to ``<service_url>/<method>``.

        Args:
            method: Backend method name
            body: Flat JSON request body

        Returns:
            Parsed backend result, whatever its return code

        Raises:
            TransportError: On network failure, timeout, non-2xx status or a
                body that is not a JSON object
        """
        try:
            resp = await self._http.post(method, json=body)
        except httpx.TimeoutException as e:
            logger.error(f"Request to {method} timed out: {e}")
            raise TransportError(
                f"Request to {method} timed out after {REQUEST_TIMEOUT}s",
                code="timeout",
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Request to {method} failed: {e}")
            raise TransportError(
                f"Request to {method} failed: {e}", code=type(e).__name__
            ) from e

        if not resp.is_success:
            logger.error(f"Backend error {resp.status_code} on {method}: {resp.text}")
            raise TransportError(
                f"Backend returned HTTP {resp.status_code} for {method}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            return EwayApiResult.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise TransportError(
                f"Backend returned an unreadable body for {method}",
                status_code=resp.status_code,
                body=resp.text,
            ) from e

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def _login_body(self) -> Dict[str, Any]:
        return {
            "userName": self._config.username or "",
            "appVersion": self._config.app_version,
            "clientMachineIdentifier": self._config.client_machine_id,
            "clientMachineName": self._config.client_machine_name,
            "createSessionCookie": False,
        }

    def _accept_login(self, result: EwayApiResult, require_session: bool) -> None:
        if not result.is_success:
            reason = result.description or result.error_message or result.return_code
            raise AuthenticationError(
                f"Login failed: {reason}",
                return_code=result.return_code,
                description=result.description,
            )
        if require_session and not result.session_id:
            raise AuthenticationError(
                "Login succeeded but the backend returned no session id",
                return_code=result.return_code,
            )
        self._session_id = result.session_id
        self._logged_in = True
        self._login_generation += 1
        self.state = ConnectionState.CONNECTED

    async def _log_in_legacy(self) -> None:
        body = self._login_body()
        body["passwordHash"] = self._config.password_hash
        result = await self._post(LOGIN_METHOD, body)
        self._accept_login(result, require_session=True)
        logger.info(
            f"Logged in as {self._config.username} "
            f"(session {mask_secret(self._session_id)})"
        )

    async def _log_in_oauth2(self) -> None:
        try:
            credential = await self._tokens.get_valid_access_token()
        except NoTokenError:
            if not self._config.client_secret:
                raise AuthenticationError(
                    "No OAuth2 token available. Complete the authorization flow "
                    f"at {API_BASE_PATH}/oauth2/authorize first."
                )
            logger.warning(
                "No OAuth2 token available, using the client secret as bearer credential"
            )
            credential = self._config.client_secret
        except OAuthError as e:
            raise AuthenticationError(
                f"OAuth2 token refresh failed: {e}. Re-authorize at "
                f"{API_BASE_PATH}/oauth2/authorize."
            ) from e

        self._set_bearer(credential)
        result = await self._post(LOGIN_METHOD, self._login_body())
        self._accept_login(result, require_session=False)
        if self._session_id:
            logger.info(f"Logged in with OAuth2 (session {mask_secret(self._session_id)})")
        else:
            logger.info("Logged in with OAuth2 bearer authentication (no session id)")

    async def _perform_login(self) -> None:
        self.state = ConnectionState.CONNECTING
        try:
            if self._config.is_oauth2:
                await self._log_in_oauth2()
            else:
                await self._log_in_legacy()
        except asyncio.CancelledError:
            logger.warning("Login cancelled")
            self._reset_session()
            raise
        except Exception as e:
            logger.error(f"Login failed: {e}")
            self._reset_session()
            raise

    async def log_in(self) -> None:
        """
        Establish a session. Does nothing when already connected.

        Raises:
            AuthenticationError: If the backend rejects the login or no
                usable credential exists
            TransportError: If the backend cannot be reached
        """
        if self.is_connected():
            return
        if self._login_task is None or self._login_task.done():
            self._login_task = asyncio.create_task(self._perform_login())
        else:
            logger.debug("Login already in progress, waiting for it")
        # Cancelling one waiter must not cancel the login for the others
        await asyncio.shield(self._login_task)

    async def reconnect(self) -> None:
        """Drop the local session (keeping the OAuth2 token) and log in again."""
        self._reset_session()
        await self.log_in()

    async def log_out(self) -> None:
        """
        End the session. Local state is cleared even if the remote call fails.
        """
        if not self.is_connected():
            return
        session_id = self._session_id
        try:
            if session_id:
                result = await self._post(LOGOUT_METHOD, {"sessionId": session_id})
                if not result.is_success:
                    logger.warning(f"Remote logout returned {result.return_code}")
            else:
                logger.debug("Bearer-only session, skipping remote logout")
        except GatewayError as e:
            logger.warning(f"Remote logout failed: {e}")
        finally:
            self._invalidate_credentials()
            logger.info("Logged out")

    # ------------------------------------------------------------------
    # Method calls
    # ------------------------------------------------------------------

    async def call_method(
        self, method: str, parameters: Optional[Dict[str, Any]] = None
    ) -> EwayApiResult:
        """
        Invoke a backend method, logging in first if needed.

        An ``rcBadSession`` or ``rcBadAccessToken`` result drops the current
        credentials and triggers one re-login followed by one retry.

        Args:
            method: Backend method name, e.g. ``SearchCompanies``
            parameters: Request body; ``sessionId`` is added when one is held

        Returns:
            The backend result unmodified. Business-level return codes are
            left to the caller.

        Raises:
            AuthenticationError: If login fails or the retry is rejected too
            TransportError: On network level failures
        """
        result: Optional[EwayApiResult] = None
        for attempt in range(MAX_AUTH_RETRIES + 1):
            if not self.is_connected():
                await self.log_in()

            generation = self._login_generation
            body = dict(parameters or {})
            if self._session_id:
                body["sessionId"] = self._session_id

            result = await self._post(method, body)
            if not result.is_auth_failure:
                return result

            logger.warning(
                f"{method} returned {result.return_code} "
                f"(attempt {attempt + 1} of {MAX_AUTH_RETRIES + 1})"
            )
            # Stale if another caller invalidated or logged in since the send
            if generation == self._login_generation:
                self._invalidate_credentials()

        raise AuthenticationError(
            f"{method} was rejected with {result.return_code} after re-authentication",
            return_code=result.return_code,
            description=result.description,
        )

    async def aclose(self) -> None:
        await self._http.aclose()
