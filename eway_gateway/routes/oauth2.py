"""
OAuth2 Routes - Authorization Code flow endpoints.

The browser-facing callback answers with HTML pages, everything else with
JSON.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from ..config import API_BASE_PATH, mask_secret
from ..context import GatewayContext, get_context
from ..errors import ApiError, GatewayError, MissingRefreshTokenError
from ..schemas.oauth import ExchangeCodeRequest
from .utils import html_page, to_api_error

logger = logging.getLogger(__name__)
router = APIRouter(prefix=f"{API_BASE_PATH}/oauth2", tags=["OAuth2"])

AUTHORIZE_PATH = f"{API_BASE_PATH}/oauth2/authorize"

AUTHORIZE_INSTRUCTIONS = [
    "1. Open the authorization URL in a browser",
    "2. Sign in to eWay-CRM",
    "3. Grant the requested permissions",
    "4. You will be redirected to the redirect URI with an authorization code",
    "5. The callback exchanges the code for an access token",
]


def _require_oauth2(context: GatewayContext) -> None:
    if not context.config.is_oauth2:
        raise ApiError(
            400,
            "OAUTH2_NOT_CONFIGURED",
            "OAuth2 is not configured; the server uses username/password login",
        )


def _wants_json(request: Request) -> bool:
    if request.query_params.get("json", "").lower() == "true":
        return True
    return "application/json" in request.headers.get("accept", "")


@router.get("/authorize", summary="Start OAuth2 authorization")
async def authorize(
    request: Request, context: GatewayContext = Depends(get_context)
) -> Response:
    """Redirect to the authorization server, or describe the redirect as JSON."""
    _require_oauth2(context)
    state = context.state_store.create()
    authorization_url = context.token_manager.get_authorization_url(state)

    if _wants_json(request):
        return JSONResponse(
            content={
                "status": "success",
                "message": "Open the authorization URL to obtain an authorization code",
                "authorizationUrl": authorization_url,
                "state": state,
                "instructions": AUTHORIZE_INSTRUCTIONS,
            }
        )

    logger.info("Redirecting to the OAuth2 authorization URL")
    return RedirectResponse(url=authorization_url, status_code=302)


@router.get("/callback", summary="OAuth2 redirect target")
async def callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    context: GatewayContext = Depends(get_context),
) -> Response:
    """Exchange the authorization code and log in to the backend."""
    if error:
        logger.error(f"Authorization server returned an error: {error} {error_description}")
        lines = [f"Error: {error}"]
        if error_description:
            lines.append(f"Description: {error_description}")
        lines.append("Authorization failed. Please try again.")
        return html_page(
            "Authorization failed", lines, status_code=400, ok=False, link=AUTHORIZE_PATH
        )

    if not code:
        return html_page(
            "Missing authorization code",
            ["The callback request did not contain an authorization code."],
            status_code=400,
            ok=False,
        )

    if not context.state_store.consume(state):
        return html_page(
            "Invalid state parameter",
            ["Possible CSRF attack detected. Start the authorization again."],
            status_code=400,
            ok=False,
            link=AUTHORIZE_PATH,
        )

    logger.info(f"Received authorization code {mask_secret(code, 10)}")
    try:
        token = await context.token_manager.exchange_code_for_token(code)
        await context.session_client.reconnect()
    except GatewayError as e:
        logger.error(f"OAuth2 callback failed: {e}")
        return html_page(
            "Authorization could not be completed",
            [str(e)],
            status_code=500,
            ok=False,
            link=AUTHORIZE_PATH,
        )

    session_id = context.session_client.get_session_id()
    return html_page(
        "Authorization successful",
        [
            "OAuth2 authorization completed. The gateway can now call eWay-CRM.",
            f"Token type: {token.token_type}",
            f"Expires at: {token.expires_at_iso()}",
            f"Refresh token: {'yes' if token.refresh_token else 'no'}",
            f"Scope: {token.scope or 'N/A'}",
            f"eWay session: {mask_secret(session_id, 12) or 'N/A'}",
        ],
    )


@router.post("/exchange-code", summary="Exchange an authorization code manually")
async def exchange_code(
    body: ExchangeCodeRequest, context: GatewayContext = Depends(get_context)
) -> Dict[str, Any]:
    _require_oauth2(context)
    if body.state is not None and not context.state_store.consume(body.state):
        raise ApiError(400, "INVALID_STATE", "Invalid state parameter")

    try:
        token = await context.token_manager.exchange_code_for_token(body.code)
        await context.session_client.reconnect()
    except GatewayError as e:
        logger.error(f"Code exchange failed: {e}")
        raise to_api_error(e) from e

    return {
        "status": "success",
        "message": "Authorization code exchanged for an access token",
        "token": token.summary(),
        "ewaySession": context.session_client.get_auth_status(),
    }


@router.post("/refresh", summary="Refresh the access token")
async def refresh(context: GatewayContext = Depends(get_context)) -> Dict[str, Any]:
    _require_oauth2(context)
    try:
        token = await context.token_manager.refresh_access_token()
        await context.session_client.reconnect()
    except MissingRefreshTokenError as e:
        raise ApiError(
            400,
            "NO_REFRESH_TOKEN",
            str(e),
            details={"authorizationUrl": AUTHORIZE_PATH},
        ) from e
    except GatewayError as e:
        logger.error(f"Token refresh failed: {e}")
        raise to_api_error(e) from e

    return {
        "status": "success",
        "message": "Access token refreshed",
        "token": token.summary(),
        "ewaySession": context.session_client.get_auth_status(),
    }


def auth_status_payload(context: GatewayContext) -> Dict[str, Any]:
    """Token and session diagnostics. Contains no raw secrets."""
    tokens = context.token_manager
    token = tokens.get_stored_token()
    details = None
    if token is not None:
        details = token.summary()
        details["isExpired"] = not tokens.has_valid_token()
    return {
        "status": "success",
        "oauth2": {
            "hasValidToken": tokens.has_valid_token(),
            "tokenState": tokens.token_state().value,
            "tokenDetails": details,
        },
        "eway": context.session_client.get_auth_status(),
    }


@router.get("/status", summary="OAuth2 and session status")
async def status(context: GatewayContext = Depends(get_context)) -> Dict[str, Any]:
    return auth_status_payload(context)


@router.post("/logout", summary="Forget the token and end the session")
async def logout(context: GatewayContext = Depends(get_context)) -> Dict[str, Any]:
    await context.session_client.log_out()
    context.token_manager.clear_token()
    return {"status": "success", "message": "Logged out"}
