"""
Middleware module for FastAPI authentication.
"""

import logging

from fastapi import Request

from ...config import API_BASE_PATH
from ...errors import ApiError, GatewayError

logger = logging.getLogger(__name__)


def authorization_url_for(request: Request) -> str:
    """Absolute URL of this server's OAuth2 authorize endpoint."""
    return f"{str(request.base_url).rstrip('/')}{API_BASE_PATH}/oauth2/authorize"


async def require_auth(request: Request):
    """
    Make sure the backend session is usable before a protected operation.

    In OAuth2 mode a valid access token is required first. A missing session
    is then established with a login attempt.

    Args:
        request: FastAPI request object

    Returns:
        The connected EwaySessionClient

    Raises:
        ApiError: 401 UNAUTHORIZED when no OAuth2 token exists, 401
            LOGIN_FAILED when the login is rejected, 500 INTERNAL_ERROR when
            the check itself breaks
    """
    try:
        context = request.app.state.context
        config = context.config
        session = context.session_client

        if config.is_oauth2 and not context.token_manager.has_valid_token():
            logger.info("Rejecting request: no valid OAuth2 token")
            raise ApiError(
                401,
                "UNAUTHORIZED",
                "OAuth2 authorization required",
                details={
                    "reason": "No valid OAuth2 access token is available",
                    "authorizationUrl": authorization_url_for(request),
                    "instructions": (
                        "Open the authorization URL in a browser, sign in to "
                        "eWay-CRM and retry the request."
                    ),
                },
            )

        if not session.is_connected():
            try:
                await session.log_in()
            except GatewayError as e:
                logger.warning(f"Rejecting request: login failed: {e}")
                details = {"reason": str(e)}
                if config.is_oauth2:
                    details["authorizationUrl"] = authorization_url_for(request)
                    details["suggestion"] = (
                        "The OAuth2 token may have been revoked. Authorize again "
                        "using the authorization URL."
                    )
                raise ApiError(
                    401, "LOGIN_FAILED", "Failed to log in to eWay-CRM", details=details
                ) from e

        return session
    except ApiError:
        raise
    except Exception as e:
        logger.exception(f"Authentication check failed: {e}")
        raise ApiError(
            500,
            "INTERNAL_ERROR",
            "Authentication check failed",
            details={"reason": str(e)},
        ) from e
