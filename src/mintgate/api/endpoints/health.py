"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from mintgate.core.settings import settings

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok", "name": settings.app_name, "version": settings.app_version}
