"""
Authentication module for the eWay-CRM gateway.

This module is split into focused submodules:
- credentials: authentication mode and credential resolution
- oauth: OAuth2 Authorization Code flow and token lifecycle
- state_store: single-use CSRF states for the authorization redirect
- middleware: FastAPI authentication dependency
"""

from .credentials import (
    AuthConfig,
    AuthMode,
    create_password_hash,
    is_password_hash,
    normalize_password_hash,
    resolve_auth_config,
)

from .oauth import (
    OAuth2TokenManager,
    StoredToken,
    TokenState,
)

from .state_store import (
    CsrfStateStore,
)

from .middleware import (
    authorization_url_for,
    require_auth,
)

__all__ = [
    # Credentials
    "AuthConfig",
    "AuthMode",
    "create_password_hash",
    "is_password_hash",
    "normalize_password_hash",
    "resolve_auth_config",
    # OAuth
    "OAuth2TokenManager",
    "StoredToken",
    "TokenState",
    # State store
    "CsrfStateStore",
    # Middleware
    "authorization_url_for",
    "require_auth",
]
