"""Pydantic schemas for backend and OAuth2 payloads."""

from .eway import AUTH_FAILURE_CODES, EwayApiResult, ReturnCode
from .oauth import ExchangeCodeRequest, OAuthTokenResponse

__all__ = [
    "AUTH_FAILURE_CODES",
    "EwayApiResult",
    "ReturnCode",
    "ExchangeCodeRequest",
    "OAuthTokenResponse",
]
