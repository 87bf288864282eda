"""
Main FastAPI application for the eWay-CRM gateway.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from .config import APP_NAME, load_environment
from .context import build_context
from .errors import ApiError
from .routes import entities_router, oauth2_router
from .routes.utils import api_error_handler
from .services.auth import AuthConfig, resolve_auth_config

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure root logging from LOG_LEVEL. Call after the environment is loaded."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger().setLevel(level)


API_DESCRIPTION = """
**eWay-CRM Gateway** exposes the eWay-CRM API as a REST service.

## Authentication

The gateway authenticates against eWay-CRM itself, either with OAuth2
(`EWAY_CLIENT_ID` / `EWAY_CLIENT_SECRET`) or with a username and password.

In OAuth2 mode an operator completes the authorization once by opening
`/api/v1/oauth2/authorize` in a browser.
"""

OPENAPI_TAGS = [
    {"name": "OAuth2", "description": "OAuth2 Authorization Code flow."},
    {"name": "Entities", "description": "CRUD endpoints for eWay-CRM items."},
    {"name": "Enum types", "description": "Read-only enumeration types."},
    {"name": "Health", "description": "Health check endpoint."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    context = app.state.context
    logger.info(f"Starting {APP_NAME} ({context.config.mode.value} authentication)")
    context.state_store.start()
    yield
    logger.info("Shutting down...")
    await context.state_store.stop()
    try:
        await context.session_client.log_out()
    finally:
        await context.session_client.aclose()


def create_app(
    config: Optional[AuthConfig] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the FastAPI application and its single service instances.

    Args:
        config: Authentication configuration, resolved from the environment
            when omitted
        transport: Optional httpx transport for all outbound calls

    Returns:
        Configured FastAPI application

    Raises:
        ConfigurationError: If no authentication mode is configured
    """
    if config is None:
        load_environment()
        config = resolve_auth_config()
    configure_logging()

    app = FastAPI(
        title=APP_NAME,
        description=API_DESCRIPTION,
        lifespan=lifespan,
        redoc_url=None,
        openapi_tags=OPENAPI_TAGS,
    )
    app.state.context = build_context(config, transport=transport)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ApiError, api_error_handler)

    @app.get("/", include_in_schema=False)
    async def root() -> RedirectResponse:
        """Redirect root to API documentation."""
        return RedirectResponse(url="/docs")

    @app.get("/health", tags=["Health"])
    async def health_check() -> Dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "service": APP_NAME}

    # OAuth2 paths must be matched before the generic /{entity} routes
    app.include_router(oauth2_router)
    app.include_router(entities_router)

    return app
