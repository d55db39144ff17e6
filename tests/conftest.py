# mypy: ignore-errors
# tests/conftest.py
from __future__ import annotations

import asyncio
import base64
import json
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from nacl.signing import SigningKey

os.environ.setdefault("KV_BACKEND", "memory")
os.environ.setdefault("MINT_SPONSOR_API_URL", "http://sponsor.test")

from mintgate.api import dependencies
from mintgate.db.kv import MemoryKeyValueStore
from mintgate.main import app as fastapi_app
from mintgate.services.blob_store import BlobStore, BlobStoreConfig
from mintgate.services.events import EventRepository
from mintgate.services.ledger import MintLedger
from mintgate.services.signature import personal_message_digest, sui_address
from mintgate.services.sponsor import SponsorConfig, SponsorDelegator

SPONSOR_URL = "http://sponsor.test"
PUBLISHER_URL = "http://publisher.test"
AGGREGATOR_URL = "http://aggregator.test"
AUTH_HEADER = "SXT Event Mint"
TX_DIGEST = "8kBz3xVtQ9wLmN2pR7sY4uF6hJ1cD5eG"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


@dataclass
class Wallet:
    """Ed25519 wallet that signs the way a Sui browser wallet does."""

    signing_key: SigningKey = field(default_factory=SigningKey.generate)

    @property
    def public_key(self) -> bytes:
        return self.signing_key.verify_key.encode()

    @property
    def public_key_b64(self) -> str:
        return base64.b64encode(self.public_key).decode()

    @property
    def address(self) -> str:
        return sui_address(self.public_key)

    def auth_message(
        self,
        event_id: str,
        *,
        address: str | None = None,
        nonce: str = "3f9c1a7e",
        timestamp: str = "1717171717000",
    ) -> str:
        return "\n".join(
            [
                AUTH_HEADER,
                f"address={address or self.address}",
                f"eventId={event_id}",
                f"nonce={nonce}",
                f"timestamp={timestamp}",
            ]
        )

    def raw_signature(self, message: bytes) -> bytes:
        return self.signing_key.sign(personal_message_digest(message)).signature

    def serialized_signature(self, message: bytes) -> str:
        """Base64 of flag || signature || public key."""
        payload = b"\x00" + self.raw_signature(message) + self.public_key
        return base64.b64encode(payload).decode()

    def mint_body(self, event_id: str) -> dict[str, Any]:
        message = self.auth_message(event_id)
        encoded = message.encode()
        return {
            "eventId": event_id,
            "address": self.address,
            "signature": self.serialized_signature(encoded),
            "bytes": base64.b64encode(encoded).decode(),
            "authMessage": message,
        }


def build_event(
    event_id: str = "evt-launch",
    *,
    active: bool = True,
    total_cap: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    **extra: Any,
) -> dict[str, Any]:
    now = datetime.now(UTC)
    event: dict[str, Any] = {
        "id": event_id,
        "name": "Launch Party",
        "active": active,
        "startAt": (start or now - timedelta(hours=1)).isoformat(),
        "endAt": (end or now + timedelta(hours=1)).isoformat(),
        "moveCall": {
            "target": "0x2::event_nft::mint",
            "arguments": ["Launch Party"],
        },
        "collectionId": "collection-1",
        "imageCid": "blob-launch-art",
        "imageMimeType": "image/png",
    }
    if total_cap is not None:
        event["totalCap"] = total_cap
    event.update(extra)
    return event


@dataclass
class RecordingTransport:
    """``httpx.MockTransport`` wrapper that keeps every request it served."""

    responder: Callable[[httpx.Request], httpx.Response]
    requests: list[httpx.Request] = field(default_factory=list)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))


def _sponsor_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "txDigest": TX_DIGEST})


def _walrus_ok(request: httpx.Request) -> httpx.Response:
    if request.method == "PUT":
        return httpx.Response(
            200,
            json={"newlyCreated": {"blobObject": {"blobId": "blob-new-1", "size": 32}}},
        )
    return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})


@pytest.fixture()
def wallet() -> Wallet:
    return Wallet()


@pytest.fixture()
def other_wallet() -> Wallet:
    return Wallet()


@pytest.fixture()
def event_factory() -> Callable[..., dict[str, Any]]:
    return build_event


@pytest.fixture()
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture()
def seed_events(kv_store: MemoryKeyValueStore) -> Callable[..., None]:
    """Write events from a synchronous test body."""

    def _seed(*events: dict[str, Any]) -> None:
        asyncio.run(kv_store.set("events", json.dumps(list(events))))

    return _seed


@pytest.fixture()
def event_repository(kv_store: MemoryKeyValueStore) -> EventRepository:
    return EventRepository(kv_store)


@pytest.fixture()
def ledger(kv_store: MemoryKeyValueStore) -> MintLedger:
    return MintLedger(kv_store)


@pytest.fixture()
def sponsor_transport() -> RecordingTransport:
    return RecordingTransport(responder=_sponsor_ok)


@pytest.fixture()
def sponsor(sponsor_transport: RecordingTransport) -> SponsorDelegator:
    return SponsorDelegator(
        SponsorConfig(base_url=SPONSOR_URL, timeout_seconds=5.0),
        client=sponsor_transport.client(),
    )


@pytest.fixture()
def walrus_transport() -> RecordingTransport:
    return RecordingTransport(responder=_walrus_ok)


@pytest.fixture()
def blob_config() -> BlobStoreConfig:
    return BlobStoreConfig(
        publisher_base=PUBLISHER_URL,
        aggregator_base=AGGREGATOR_URL,
        default_epochs=5,
        max_blob_bytes=1024,
        max_attempts=3,
        backoff_base_seconds=0.5,
        attempt_timeout_seconds=5.0,
        total_timeout_seconds=30.0,
    )


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def blob_store(
    blob_config: BlobStoreConfig,
    walrus_transport: RecordingTransport,
    sleeps: list[float],
) -> BlobStore:
    async def _record_sleep(delay: float) -> None:
        sleeps.append(delay)

    return BlobStore(blob_config, client=walrus_transport.client(), sleep=_record_sleep)


@pytest.fixture()
def app(
    kv_store: MemoryKeyValueStore,
    sponsor: SponsorDelegator,
    blob_store: BlobStore,
) -> Iterator[FastAPI]:
    overrides = {
        dependencies.get_kv_store: lambda: kv_store,
        dependencies.get_sponsor_delegator: lambda: sponsor,
        dependencies.get_blob_store: lambda: blob_store,
    }
    fastapi_app.dependency_overrides.update(overrides)
    try:
        yield fastapi_app
    finally:
        for dependency in overrides:
            fastapi_app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
