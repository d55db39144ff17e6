"""Mint event activity window."""

from __future__ import annotations

from datetime import UTC, datetime

from mintgate.schemas.event import MintEvent


def is_active(event: MintEvent, now: datetime | None = None) -> bool:
    """Return True if ``event`` is enabled and ``now`` lies in its window.

    Both bounds are inclusive. A naive ``now`` is taken to be UTC.
    """
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return bool(event.active) and event.start_at <= now <= event.end_at
