"""
Application context shared by the route handlers.

Built once by ``create_app`` and stored on ``app.state.context``.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from .services.auth.credentials import AuthConfig
from .services.auth.oauth import OAuth2TokenManager
from .services.auth.state_store import CsrfStateStore
from .services.eway_client import EwaySessionClient


@dataclass(frozen=True)
class GatewayContext:
    """The single instances of the authentication core."""

    config: AuthConfig
    token_manager: OAuth2TokenManager
    session_client: EwaySessionClient
    state_store: CsrfStateStore


def build_context(
    config: AuthConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> GatewayContext:
    """
    Wire the token manager, session client and state store together.

    Args:
        config: Resolved authentication configuration
        transport: Optional httpx transport shared by all outbound calls

    Returns:
        New GatewayContext
    """
    token_manager = OAuth2TokenManager(config, transport=transport)
    return GatewayContext(
        config=config,
        token_manager=token_manager,
        session_client=EwaySessionClient(config, token_manager, transport=transport),
        state_store=CsrfStateStore(),
    )


def get_context(request: Request) -> GatewayContext:
    """FastAPI dependency returning the application context."""
    return request.app.state.context
