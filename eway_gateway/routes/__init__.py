"""Route modules for the eWay-CRM gateway."""

from .entities import router as entities_router
from .oauth2 import router as oauth2_router

__all__ = ["entities_router", "oauth2_router"]
