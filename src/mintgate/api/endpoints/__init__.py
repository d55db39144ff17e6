"""API endpoint modules."""

from .health import router as health_router
from .mint import router as mint_router
from .walrus import router as walrus_router

__all__ = ["health_router", "mint_router", "walrus_router"]
