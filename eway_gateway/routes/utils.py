"""Shared utility functions for route handlers."""

import html
import logging
import math
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.responses import HTMLResponse, JSONResponse

from ..errors import (
    ApiError,
    AuthenticationError,
    GatewayError,
    OAuthError,
    RemoteCallError,
    TransportError,
)
from ..schemas.eway import ReturnCode

logger = logging.getLogger(__name__)

_PAGE_STYLE = (
    "body { font-family: Arial, sans-serif; margin: 50px; background: #f5f5f5; } "
    ".container { max-width: 600px; margin: 0 auto; background: white; "
    "padding: 30px; border-radius: 10px; } "
    "h1.ok { color: #4caf50; } h1.error { color: #d32f2f; } "
    "code { background: #f5f5f5; padding: 2px 4px; }"
)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render an ApiError as ``{"error": {"code", "message", "details"}}``."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def to_api_error(exc: GatewayError) -> ApiError:
    """
    Map a gateway error to the HTTP error returned to API clients.

    Args:
        exc: Error raised by the session or service layer

    Returns:
        ApiError with a status code matching the failure class
    """
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, AuthenticationError):
        return ApiError(
            401,
            "LOGIN_FAILED",
            "Failed to authenticate with eWay-CRM",
            details={"reason": str(exc), "returnCode": exc.return_code},
        )
    if isinstance(exc, RemoteCallError):
        if exc.return_code == ReturnCode.VALIDATION_ERROR.value:
            return ApiError(
                400,
                "VALIDATION_ERROR",
                str(exc),
                details={"returnCode": exc.return_code},
            )
        return ApiError(
            502,
            "EWAY_API_ERROR",
            str(exc),
            details={"returnCode": exc.return_code},
        )
    if isinstance(exc, TransportError):
        return ApiError(
            503,
            "SERVICE_UNAVAILABLE",
            "eWay-CRM API is not reachable",
            details={"reason": str(exc), "status": exc.status_code, "code": exc.code},
        )
    if isinstance(exc, OAuthError):
        return ApiError(
            500,
            "OAUTH_ERROR",
            str(exc),
            details={"status": exc.status_code, "payload": exc.payload},
        )
    logger.error(f"Unmapped gateway error: {exc}")
    return ApiError(500, "INTERNAL_ERROR", str(exc))


def build_pagination(
    total: Optional[int], limit: int, offset: int, returned: int
) -> Dict[str, Any]:
    """
    Build the pagination block of a list response.

    When the backend reports no total, the number of items seen so far is
    used instead.
    """
    if total is None:
        total = offset + returned
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + returned < total,
        "page": offset // limit + 1,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


def paginated_response(
    items: List[Any], total: Optional[int], limit: int, offset: int
) -> Dict[str, Any]:
    return {"data": items, "pagination": build_pagination(total, limit, offset, len(items))}


def html_page(
    title: str,
    paragraphs: List[str],
    status_code: int = 200,
    ok: bool = True,
    link: Optional[str] = None,
) -> HTMLResponse:
    """
    Render a minimal HTML page for browser-facing endpoints.

    Args:
        title: Page title and heading
        paragraphs: Text lines; escaped before rendering
        status_code: HTTP status of the response
        ok: Selects the success or error heading style
        link: Optional "try again" URL

    Returns:
        HTMLResponse
    """
    body = "".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)
    if link:
        body += f'<p><a href="{html.escape(link)}">Try again</a></p>'
    css_class = "ok" if ok else "error"
    page = (
        "<!DOCTYPE html><html><head>"
        f"<title>{html.escape(title)}</title><style>{_PAGE_STYLE}</style>"
        "</head><body><div class=\"container\">"
        f'<h1 class="{css_class}">{html.escape(title)}</h1>{body}'
        "</div></body></html>"
    )
    return HTMLResponse(content=page, status_code=status_code)
