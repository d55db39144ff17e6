"""HTTP API for the mint pipeline and blob storage."""

from .endpoints import health_router, mint_router, walrus_router

__all__ = ["health_router", "mint_router", "walrus_router"]
