"""
Configuration constants for the eWay-CRM gateway server.
Centralizes all configuration to avoid duplication across modules.
"""

import logging
import os
from typing import MutableMapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# App Info
APP_NAME = "eWay-CRM Gateway"
DEFAULT_APP_VERSION = "MCP-Server-1.0"

# REST surface
API_BASE_PATH = "/api/v1"
DEFAULT_PORT = 3000

# Backend API
SERVICE_PATH = "/API.svc"
DEFAULT_CLIENT_MACHINE_ID = "AA:BB:CC:DD:EE:FF"
DEFAULT_CLIENT_MACHINE_NAME = "MCP-Server"

# OAuth
OAUTH_AUTHORIZE_PATH = "/auth/connect/authorize"
OAUTH_TOKEN_PATH = "/auth/connect/token"
OAUTH_SCOPE = "api offline_access"

# Timeouts and Intervals
REQUEST_TIMEOUT = 30  # seconds, every outbound HTTP call
TOKEN_REFRESH_BUFFER = 60  # seconds before expiry a token is refreshed on read
STATE_MAX_AGE = 30 * 60  # CSRF state lifetime
STATE_SWEEP_INTERVAL = 10 * 60

# Pagination
DEFAULT_PAGE_LIMIT = 25
MAX_PAGE_LIMIT = 100

# Environment variables with this prefix are also exposed without it
ENV_ALIAS_PREFIX = "MCP_API_"


def apply_env_prefix_aliases(environ: MutableMapping[str, str]) -> int:
    """
    Copy every ``MCP_API_<KEY>`` variable to ``<KEY>``.

    Lets a desktop MCP host and the REST server share one configuration.

    Args:
        environ: Mapping to update in place (usually ``os.environ``)

    Returns:
        Number of aliased variables
    """
    aliased = 0
    for key in list(environ.keys()):
        if key.startswith(ENV_ALIAS_PREFIX) and len(key) > len(ENV_ALIAS_PREFIX):
            environ[key[len(ENV_ALIAS_PREFIX) :]] = environ[key]
            aliased += 1
    if aliased:
        logger.debug(f"Applied {aliased} {ENV_ALIAS_PREFIX}* environment aliases")
    return aliased


def load_environment() -> None:
    """Load ``.env`` from the working directory and apply prefix aliases."""
    env_path = os.path.join(os.getcwd(), ".env")
    loaded = load_dotenv(env_path)
    logger.debug(f".env path: {env_path} (loaded: {loaded})")
    apply_env_prefix_aliases(os.environ)


def mask_secret(value: Optional[str], visible: int = 8) -> Optional[str]:
    """Return a shortened, log-safe rendition of a secret value."""
    if not value:
        return None
    if len(value) <= visible:
        return "***"
    return f"{value[:visible]}..."
