"""Idempotency and capacity ledger for mints.

Keys (addresses are lowercased):

    minted:{event_id}:{address}            -> {"tx": ..., "at": ...}
    minted_count:{event_id}                -> decimal count
    mint_in_progress:{event_id}:{address}  -> ISO timestamp, short TTL

The ledger is best-effort. ``already_minted`` followed later by ``record``
is not atomic, so two simultaneous requests for the same address can both
pass the check; the in-progress lock narrows that window but does not close
it. The counter is a plain read-increment-write and can overshoot the cap
under concurrent load. Scarcity is enforced on-chain; the cap here is an
operational guard. Closing the window needs a backend with a conditional
"put if absent" write.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from mintgate.core.errors import LedgerUnavailableError, LedgerWriteError
from mintgate.core.settings import Settings
from mintgate.db.kv import KeyValueStore, KeyValueStoreError
from mintgate.schemas.event import MintEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerConfig:
    """Immutable configuration for the mint ledger."""

    lock_ttl_seconds: int = 60
    record_ttl_seconds: int = 60 * 60 * 24 * 365


def load_ledger_config(settings: Settings) -> LedgerConfig:
    return LedgerConfig(
        lock_ttl_seconds=settings.mint_lock_ttl_seconds,
        record_ttl_seconds=settings.mint_record_ttl_seconds,
    )


@dataclass(frozen=True)
class MintRecord:
    """Durable receipt of a confirmed mint."""

    transaction_ref: str
    recorded_at: str

    def to_json(self) -> str:
        return json.dumps({"tx": self.transaction_ref, "at": self.recorded_at})

    @classmethod
    def from_json(cls, payload: str) -> MintRecord:
        data = json.loads(payload)
        return cls(transaction_ref=str(data.get("tx", "")), recorded_at=str(data.get("at", "")))


def minted_key(event_id: str, address: str) -> str:
    return f"minted:{event_id}:{address.lower()}"


def minted_count_key(event_id: str) -> str:
    return f"minted_count:{event_id}"


def in_progress_key(event_id: str, address: str) -> str:
    return f"mint_in_progress:{event_id}:{address.lower()}"


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


class MintLedger:
    """Key-value backed idempotency, counter and lock bookkeeping."""

    def __init__(self, store: KeyValueStore, config: LedgerConfig | None = None) -> None:
        self._store = store
        self.config = config or LedgerConfig()

    async def already_minted(self, event_id: str, address: str) -> bool:
        try:
            existing = await self._store.get(minted_key(event_id, address))
        except KeyValueStoreError as exc:
            raise LedgerUnavailableError("mint ledger unavailable") from exc
        return bool(existing)

    async def get_record(self, event_id: str, address: str) -> MintRecord | None:
        """Return the stored receipt for ``(event_id, address)``.

        None when there is no receipt or it cannot be parsed. An unparsable
        receipt still counts for :meth:`already_minted`.
        """
        try:
            payload = await self._store.get(minted_key(event_id, address))
        except KeyValueStoreError as exc:
            raise LedgerUnavailableError("mint ledger unavailable") from exc
        if not payload:
            return None
        try:
            return MintRecord.from_json(payload)
        except (json.JSONDecodeError, AttributeError):
            logger.warning("Unreadable mint record for %s/%s", event_id, address.lower())
            return None

    async def minted_count(self, event_id: str) -> int:
        try:
            raw = await self._store.get(minted_count_key(event_id))
        except KeyValueStoreError as exc:
            raise LedgerUnavailableError("mint ledger unavailable") from exc
        if not raw:
            return 0
        try:
            return int(raw)
        except ValueError:
            logger.warning("Non-numeric mint counter for %s: %r", event_id, raw)
            return 0

    async def cap_reached(self, event: MintEvent, event_id: str) -> bool:
        """Return True if ``event`` has a cap and the counter has met it."""
        if not event.has_cap:
            return False
        return await self.minted_count(event_id) >= (event.total_cap or 0)

    async def lock(self, event_id: str, address: str) -> None:
        try:
            await self._store.set(
                in_progress_key(event_id, address),
                _utcnow_iso(),
                ttl_seconds=self.config.lock_ttl_seconds,
            )
        except KeyValueStoreError as exc:
            raise LedgerUnavailableError("mint ledger unavailable") from exc

    async def is_locked(self, event_id: str, address: str) -> bool:
        try:
            return bool(await self._store.get(in_progress_key(event_id, address)))
        except KeyValueStoreError as exc:
            raise LedgerUnavailableError("mint ledger unavailable") from exc

    async def unlock(self, event_id: str, address: str) -> None:
        try:
            await self._store.delete(in_progress_key(event_id, address))
        except KeyValueStoreError as exc:
            raise LedgerWriteError(f"unlock failed: {exc}") from exc

    async def record(self, event_id: str, address: str, transaction_ref: str) -> MintRecord:
        """Write the receipt. Call once per successful delegation."""
        receipt = MintRecord(transaction_ref=transaction_ref, recorded_at=_utcnow_iso())
        try:
            await self._store.set(
                minted_key(event_id, address),
                receipt.to_json(),
                ttl_seconds=self.config.record_ttl_seconds,
            )
        except KeyValueStoreError as exc:
            raise LedgerWriteError(f"record failed: {exc}") from exc
        return receipt

    async def increment_counter(self, event_id: str) -> int:
        """Add exactly one to the event counter (read-increment-write)."""
        key = minted_count_key(event_id)
        try:
            raw = await self._store.get(key)
            current = int(raw) if raw else 0
            await self._store.set(key, str(current + 1))
        except (KeyValueStoreError, ValueError) as exc:
            raise LedgerWriteError(f"counter increment failed: {exc}") from exc
        return current + 1
