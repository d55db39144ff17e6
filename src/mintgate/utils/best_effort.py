"""Helper for side effects that must never fail the caller."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def best_effort(label: str, operation: Awaitable[T]) -> T | None:
    """Await ``operation``; log and swallow any failure.

    Used for bookkeeping that follows an action which already succeeded
    elsewhere (for example a confirmed on-chain mint).
    """
    try:
        return await operation
    except Exception:
        logger.exception("Best-effort step %r failed", label)
        return None
