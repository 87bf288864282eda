"""
Pydantic schemas for the OAuth2 token endpoint and OAuth2 HTTP handlers.
"""

from typing import Optional

from pydantic import BaseModel, Field


class OAuthTokenResponse(BaseModel):
    """Successful response from the authorization server's token endpoint."""

    access_token: str = Field(..., description="Bearer access token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(..., description="Lifetime of the access token in seconds")
    refresh_token: Optional[str] = Field(
        default=None,
        description="Refresh token; some servers omit it on refresh",
    )
    scope: Optional[str] = Field(default=None, description="Granted scopes")
    id_token: Optional[str] = Field(default=None)

    class Config:
        extra = "allow"


class ExchangeCodeRequest(BaseModel):
    """Request body for the manual code exchange endpoint."""

    code: str = Field(
        ..., min_length=1, description="Authorization code from the OAuth2 server"
    )
    state: Optional[str] = Field(
        default=None, description="CSRF state returned by /authorize, if one was used"
    )
