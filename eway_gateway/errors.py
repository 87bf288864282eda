"""
Exception types raised by the gateway.

Only lightweight, data-carrying exceptions live here so that the HTTP layer
can transform them into responses. The session layer raises them and never
knows about HTTP status codes; ``ApiError`` is the only boundary type.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""


class ConfigurationError(GatewayError):
    """Neither authentication mode is fully configured. Fatal at startup."""


class AuthenticationError(GatewayError):
    """Login was rejected or no usable credential is available."""

    def __init__(
        self,
        message: str,
        *,
        return_code: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.return_code = return_code
        self.description = description


class TransportError(GatewayError):
    """Network failure or unexpected HTTP status from an upstream server."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Any = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "status": self.status_code,
            "code": self.code,
            "body": self.body,
        }


class OAuthError(GatewayError):
    """The authorization server rejected a token request."""

    def __init__(
        self,
        message: str,
        *,
        payload: Any = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.payload = payload
        self.status_code = status_code


class NoTokenError(OAuthError):
    """No OAuth2 token has been stored yet."""


class MissingRefreshTokenError(OAuthError):
    """A refresh was requested but the stored token cannot be renewed."""


class RemoteCallError(GatewayError):
    """The backend answered a call with a non-success result code."""

    def __init__(
        self, message: str, *, return_code: str, description: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.return_code = return_code
        self.description = description


class ApiError(GatewayError):
    """Error carrying an HTTP status, rendered as ``{"error": {...}}``."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        """Return a JSON-serialisable payload without secrets."""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"error": error}
