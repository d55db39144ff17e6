"""Read access to mint events stored by the admin surface."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError as PydanticValidationError

from mintgate.core.errors import LedgerUnavailableError
from mintgate.db.kv import KeyValueStore, KeyValueStoreError
from mintgate.schemas.event import MintEvent

logger = logging.getLogger(__name__)


class EventRepository:
    """Looks events up in the JSON list kept under a single key."""

    def __init__(self, store: KeyValueStore, events_key: str = "events") -> None:
        self._store = store
        self._events_key = events_key

    async def list_events(self) -> list[MintEvent]:
        try:
            payload = await self._store.get(self._events_key)
        except KeyValueStoreError as exc:
            logger.error("Event store read failed: %s", exc)
            raise LedgerUnavailableError("event store unavailable") from exc
        if not payload:
            return []

        try:
            entries = json.loads(payload)
        except json.JSONDecodeError:
            logger.error("Event list under %r is not valid JSON", self._events_key)
            return []
        if not isinstance(entries, list):
            logger.error("Event list under %r is not a JSON array", self._events_key)
            return []

        events: list[MintEvent] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                events.append(MintEvent.model_validate(entry))
            except PydanticValidationError as exc:
                logger.warning(
                    "Skipping malformed event %r: %s",
                    entry.get("id"),
                    exc.errors(include_url=False),
                )
        return events

    async def get(self, event_id: str) -> MintEvent | None:
        """Return the event with ``event_id`` or None."""
        for event in await self.list_events():
            if event.id == event_id:
                return event
        return None
