"""
Credentials module for resolving which authentication mode is active.

Runs once at startup and produces an immutable ``AuthConfig``.
"""

import hashlib
import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from ...config import (
    DEFAULT_APP_VERSION,
    DEFAULT_CLIENT_MACHINE_ID,
    DEFAULT_CLIENT_MACHINE_NAME,
    OAUTH_AUTHORIZE_PATH,
    OAUTH_TOKEN_PATH,
    SERVICE_PATH,
    mask_secret,
)
from ...errors import ConfigurationError

logger = logging.getLogger(__name__)

_PASSWORD_HASH_RE = re.compile(r"^[A-F0-9]{32}$", re.IGNORECASE)


class AuthMode(str, Enum):
    """Authentication scheme used against the backend."""

    OAUTH2 = "oauth2"
    LEGACY = "legacy"


@dataclass(frozen=True)
class AuthConfig:
    """Immutable authentication configuration for the process lifetime."""

    api_url: str
    mode: AuthMode
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    username: Optional[str] = None
    password_hash: Optional[str] = None
    app_version: str = DEFAULT_APP_VERSION
    client_machine_id: str = DEFAULT_CLIENT_MACHINE_ID
    client_machine_name: str = DEFAULT_CLIENT_MACHINE_NAME

    @property
    def is_oauth2(self) -> bool:
        return self.mode is AuthMode.OAUTH2

    @property
    def root_url(self) -> str:
        """API URL without a trailing service path."""
        url = self.api_url.rstrip("/")
        if url.lower().endswith(SERVICE_PATH.lower()):
            url = url[: -len(SERVICE_PATH)]
        return url

    @property
    def service_url(self) -> str:
        """Base URL of the RPC endpoints (``<root>/API.svc``)."""
        return f"{self.root_url}{SERVICE_PATH}"

    @property
    def authorize_url(self) -> str:
        return f"{self.root_url}{OAUTH_AUTHORIZE_PATH}"

    @property
    def token_url(self) -> str:
        return f"{self.root_url}{OAUTH_TOKEN_PATH}"


def create_password_hash(password: str) -> str:
    """
    Hash a plaintext password the way the backend expects it.

    Args:
        password: Plaintext password

    Returns:
        MD5 digest as 32 uppercase hex characters
    """
    return hashlib.md5(password.encode("utf-8")).hexdigest().upper()


def is_password_hash(value: str) -> bool:
    """Check whether a value looks like an MD5 hex digest (any case)."""
    return bool(_PASSWORD_HASH_RE.match(value))


def normalize_password_hash(value: str) -> str:
    """
    Normalize a value supplied in a "password hash" field.

    A valid 32-character hex digest is uppercased. Anything else is assumed
    to be a plaintext password placed in the wrong field and is hashed.

    Args:
        value: Hash or accidental plaintext

    Returns:
        Uppercase hex MD5 digest
    """
    if is_password_hash(value):
        return value.upper()
    logger.warning("EWAY_PASSWORD_HASH is not a valid MD5 hash, hashing it as plaintext")
    return create_password_hash(value)


def _get(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_auth_config(environ: Optional[Mapping[str, str]] = None) -> AuthConfig:
    """
    Resolve the active authentication mode from the environment.

    Selection order:
    1. OAuth2 when both ``EWAY_CLIENT_ID`` and ``EWAY_CLIENT_SECRET`` are set
    2. Legacy when ``EWAY_USERNAME`` and ``EWAY_PASSWORD`` or
       ``EWAY_PASSWORD_HASH`` are set

    Args:
        environ: Mapping to read from, defaults to ``os.environ``

    Returns:
        Resolved AuthConfig

    Raises:
        ConfigurationError: If the API URL is missing or neither mode is
            fully configured
    """
    env = os.environ if environ is None else environ

    api_url = _get(env, "EWAY_API_URL")
    if not api_url:
        raise ConfigurationError("Required environment variable EWAY_API_URL is not set")

    common = {
        "api_url": api_url,
        "app_version": _get(env, "APP_VERSION") or DEFAULT_APP_VERSION,
        "client_machine_id": _get(env, "CLIENT_MACHINE_ID") or DEFAULT_CLIENT_MACHINE_ID,
        "client_machine_name": _get(env, "CLIENT_MACHINE_NAME")
        or DEFAULT_CLIENT_MACHINE_NAME,
    }

    client_id = _get(env, "EWAY_CLIENT_ID")
    client_secret = _get(env, "EWAY_CLIENT_SECRET")
    username = _get(env, "EWAY_USERNAME")

    if client_id and client_secret:
        config = AuthConfig(
            mode=AuthMode.OAUTH2,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=_get(env, "EWAY_REDIRECT_URI"),
            username=username,
            **common,
        )
        logger.info(
            f"Using OAuth2 authentication (client_id={mask_secret(client_id)}, "
            f"redirect_uri={config.redirect_uri})"
        )
        return config

    password = _get(env, "EWAY_PASSWORD")
    password_hash = _get(env, "EWAY_PASSWORD_HASH")

    if username and (password or password_hash):
        if password:
            resolved_hash = create_password_hash(password)
        else:
            resolved_hash = normalize_password_hash(password_hash)
        config = AuthConfig(
            mode=AuthMode.LEGACY,
            username=username,
            password_hash=resolved_hash,
            **common,
        )
        logger.info(f"Using legacy username/password authentication for {username}")
        return config

    logger.error(
        "No authentication configured: "
        f"EWAY_CLIENT_ID={'set' if client_id else 'missing'}, "
        f"EWAY_CLIENT_SECRET={'set' if client_secret else 'missing'}, "
        f"EWAY_USERNAME={'set' if username else 'missing'}, "
        f"EWAY_PASSWORD={'set' if password else 'missing'}, "
        f"EWAY_PASSWORD_HASH={'set' if password_hash else 'missing'}"
    )
    raise ConfigurationError(
        "Authentication is not configured. Set EWAY_CLIENT_ID and "
        "EWAY_CLIENT_SECRET for OAuth2, or EWAY_USERNAME with EWAY_PASSWORD "
        "or EWAY_PASSWORD_HASH for legacy login."
    )
