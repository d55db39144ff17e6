"""Shared API dependencies wiring services from configuration.

This module is the composition root: services receive frozen config built
here from the settings object and never read it themselves. Long-lived
resources (key-value connection, HTTP clients) are process singletons
released by :func:`close_services` on shutdown.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from mintgate.core.settings import settings
from mintgate.db.kv import KeyValueStore, create_kv_store
from mintgate.services.blob_store import BlobStore, load_blob_store_config
from mintgate.services.events import EventRepository
from mintgate.services.ledger import MintLedger, load_ledger_config
from mintgate.services.mint import MintOrchestrator, load_orchestrator_config
from mintgate.services.signature import SignatureVerifier, load_verifier_config
from mintgate.services.sponsor import SponsorDelegator, load_sponsor_config


class _ServiceSingletons:
    """Lazily created process-wide resources."""

    kv_store: KeyValueStore | None = None
    sponsor: SponsorDelegator | None = None
    blob_store: BlobStore | None = None

    @classmethod
    def get_kv_store(cls) -> KeyValueStore:
        if cls.kv_store is None:
            cls.kv_store = create_kv_store(settings.kv_backend, settings.redis_url)
        return cls.kv_store

    @classmethod
    def get_sponsor(cls) -> SponsorDelegator:
        if cls.sponsor is None:
            cls.sponsor = SponsorDelegator(load_sponsor_config(settings))
        return cls.sponsor

    @classmethod
    def get_blob_store(cls) -> BlobStore:
        if cls.blob_store is None:
            cls.blob_store = BlobStore(load_blob_store_config(settings))
        return cls.blob_store

    @classmethod
    async def close(cls) -> None:
        if cls.sponsor is not None:
            await cls.sponsor.close()
            cls.sponsor = None
        if cls.blob_store is not None:
            await cls.blob_store.close()
            cls.blob_store = None
        if cls.kv_store is not None:
            await cls.kv_store.close()
            cls.kv_store = None


def get_kv_store() -> KeyValueStore:
    """Return the shared key-value store."""
    return _ServiceSingletons.get_kv_store()


def get_sponsor_delegator() -> SponsorDelegator:
    return _ServiceSingletons.get_sponsor()


def get_blob_store() -> BlobStore:
    return _ServiceSingletons.get_blob_store()


KeyValueStoreDep = Annotated[KeyValueStore, Depends(get_kv_store)]
SponsorDep = Annotated[SponsorDelegator, Depends(get_sponsor_delegator)]
BlobStoreDep = Annotated[BlobStore, Depends(get_blob_store)]


def get_event_repository(store: KeyValueStoreDep) -> EventRepository:
    return EventRepository(store, events_key=settings.events_key)


def get_mint_ledger(store: KeyValueStoreDep) -> MintLedger:
    return MintLedger(store, load_ledger_config(settings))


def get_signature_verifier() -> SignatureVerifier:
    return SignatureVerifier(load_verifier_config(settings))


EventRepositoryDep = Annotated[EventRepository, Depends(get_event_repository)]
MintLedgerDep = Annotated[MintLedger, Depends(get_mint_ledger)]
SignatureVerifierDep = Annotated[SignatureVerifier, Depends(get_signature_verifier)]


def get_mint_orchestrator(
    events: EventRepositoryDep,
    ledger: MintLedgerDep,
    verifier: SignatureVerifierDep,
    sponsor: SponsorDep,
) -> MintOrchestrator:
    """Build a request-scoped orchestrator over the shared resources."""
    return MintOrchestrator(
        events=events,
        ledger=ledger,
        verifier=verifier,
        sponsor=sponsor,
        config=load_orchestrator_config(settings),
    )


MintOrchestratorDep = Annotated[MintOrchestrator, Depends(get_mint_orchestrator)]


async def close_services() -> None:
    """Release shared connections and HTTP clients."""
    await _ServiceSingletons.close()
