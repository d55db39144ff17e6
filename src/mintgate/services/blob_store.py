"""Blob storage client for event artwork (Walrus publisher/aggregator).

Uploads always carry exactly one explicit retention policy. The publisher's
own default is the least durable lifetime, so an upload that relies on it is
treated as a bug: callers that pass no policy get the configured default sent
explicitly.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import quote

import httpx
from jose import jwt

from mintgate.core.errors import (
    BlobNotFoundError,
    BlobStoreRejectedError,
    BlobStoreUnavailableError,
    BlobTooLargeError,
    ValidationError,
    truncate_detail,
)
from mintgate.core.settings import Settings

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_INTERNAL_SERVER_ERROR = 500
BLOBS_PATH = "/v1/blobs"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

RetentionKind = Literal["epochs", "permanent", "deletable"]


@dataclass(frozen=True)
class RetentionPolicy:
    """Explicit lifetime of a stored blob. Exactly one kind applies."""

    kind: RetentionKind
    epochs: int | Literal["max"] | None = None

    def __post_init__(self) -> None:
        if self.kind == "epochs":
            if self.epochs != "max" and not (isinstance(self.epochs, int) and self.epochs > 0):
                raise ValueError("epochs must be a positive integer or 'max'")
        elif self.epochs is not None:
            raise ValueError(f"{self.kind} retention does not take an epoch count")

    @classmethod
    def for_epochs(cls, epochs: int | Literal["max"]) -> RetentionPolicy:
        return cls(kind="epochs", epochs=epochs)

    @classmethod
    def permanent(cls) -> RetentionPolicy:
        return cls(kind="permanent")

    @classmethod
    def deletable(cls) -> RetentionPolicy:
        return cls(kind="deletable")

    @classmethod
    def from_query(
        cls,
        epochs: str | None = None,
        permanent: str | None = None,
        deletable: str | None = None,
    ) -> RetentionPolicy | None:
        """Pick the caller's choice from query parameters, or None if absent.

        Precedence is epochs, then permanent, then deletable.

        Raises:
            ValueError: ``epochs`` is neither a positive integer nor ``max``.
        """
        if epochs:
            if epochs == "max":
                return cls.for_epochs("max")
            try:
                count = int(epochs)
            except ValueError as err:
                raise ValueError(f"invalid epochs value: {epochs!r}") from err
            return cls.for_epochs(count)
        if permanent == "true":
            return cls.permanent()
        if deletable == "true":
            return cls.deletable()
        return None

    def query_params(self) -> dict[str, str]:
        """Render as the single query parameter the publisher expects."""
        if self.kind == "epochs":
            return {"epochs": str(self.epochs)}
        return {self.kind: "true"}


@dataclass(frozen=True)
class BlobStoreConfig:
    """Immutable configuration for the blob store client."""

    publisher_base: str
    aggregator_base: str
    default_epochs: int = 5
    default_permanent: bool = False
    max_blob_bytes: int = 10 * 1024 * 1024
    max_attempts: int = 3
    backoff_base_seconds: float = 0.5
    attempt_timeout_seconds: float = 15.0
    total_timeout_seconds: float = 60.0
    jwt_secret: str | None = None
    jwt_ttl_seconds: int = 180
    max_epochs: int | None = None

    def default_retention(self) -> RetentionPolicy:
        if self.default_permanent:
            return RetentionPolicy.permanent()
        return RetentionPolicy.for_epochs(self.default_epochs)


def load_blob_store_config(settings: Settings) -> BlobStoreConfig:
    return BlobStoreConfig(
        publisher_base=settings.walrus_publisher_base,
        aggregator_base=settings.walrus_aggregator_base,
        default_epochs=settings.walrus_default_epochs,
        default_permanent=settings.walrus_default_permanent,
        max_blob_bytes=settings.walrus_max_blob_bytes,
        max_attempts=settings.walrus_max_attempts,
        backoff_base_seconds=settings.walrus_backoff_base_seconds,
        attempt_timeout_seconds=settings.walrus_attempt_timeout_seconds,
        total_timeout_seconds=settings.walrus_total_timeout_seconds,
        jwt_secret=settings.walrus_publisher_jwt_secret,
        jwt_ttl_seconds=settings.walrus_jwt_ttl_seconds,
        max_epochs=settings.walrus_max_epochs,
    )


@dataclass(frozen=True)
class StoredBlob:
    blob_id: str
    size: int
    content_type: str
    retention: RetentionPolicy
    newly_created: bool


@dataclass(frozen=True)
class FetchedBlob:
    data: bytes
    content_type: str


def extract_blob_id(body: Any) -> tuple[str | None, bool]:
    """Return ``(blob_id, newly_created)`` from a publisher response."""
    if not isinstance(body, dict):
        return None, False
    if isinstance(body.get("blobStoreResult"), dict):
        body = body["blobStoreResult"]

    newly = body.get("newlyCreated")
    if isinstance(newly, dict):
        blob_object = newly.get("blobObject")
        if isinstance(blob_object, dict) and blob_object.get("blobId"):
            return str(blob_object["blobId"]), True

    already = body.get("alreadyCertified")
    if isinstance(already, dict) and already.get("blobId"):
        return str(already["blobId"]), False

    if body.get("blobId"):
        return str(body["blobId"]), False
    return None, False


class BlobStore:
    """Stores and fetches binary blobs with explicit retention and retries."""

    def __init__(
        self,
        config: BlobStoreConfig,
        client: httpx.AsyncClient | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()
        self._sleep = sleep

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.attempt_timeout_seconds),
                )
        return self._client

    def blob_url(self, blob_id: str) -> str:
        """Public aggregator URL for ``blob_id``."""
        base = self.config.aggregator_base.rstrip("/")
        return f"{base}{BLOBS_PATH}/{quote(blob_id, safe='')}"

    def _publisher_token(self) -> str | None:
        if not self.config.jwt_secret:
            return None
        now = int(time.time())
        claims: dict[str, Any] = {
            "sub": "mintgate-upload",
            "iat": now,
            "exp": now + max(1, self.config.jwt_ttl_seconds),
            "jti": uuid.uuid4().hex,
            "max_size": self.config.max_blob_bytes,
        }
        if self.config.max_epochs:
            claims["max_epochs"] = self.config.max_epochs
        return jwt.encode(claims, self.config.jwt_secret, algorithm="HS256")

    def _upload_headers(self, content_type: str) -> dict[str, str]:
        headers = {"Content-Type": content_type}
        token = self._publisher_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _check_retention(self, retention: RetentionPolicy) -> None:
        max_epochs = self.config.max_epochs
        if (
            max_epochs
            and retention.kind == "epochs"
            and isinstance(retention.epochs, int)
            and retention.epochs > max_epochs
        ):
            raise ValidationError(f"epochs must not exceed {max_epochs}")

    async def store(
        self,
        data: bytes,
        retention: RetentionPolicy | None = None,
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> StoredBlob:
        """Upload ``data`` and return the content-derived blob id.

        Retries 5xx responses and transport failures with exponential backoff;
        4xx responses and bodies without a blob id fail at once.

        Raises:
            ValidationError: Empty payload or retention beyond the allowed maximum.
            BlobTooLargeError: Payload above the upstream ceiling.
            BlobStoreRejectedError: Non-retryable upstream answer.
            BlobStoreUnavailableError: Retries exhausted or total deadline expired.
        """
        if not data:
            raise ValidationError("empty blob")
        if len(data) > self.config.max_blob_bytes:
            raise BlobTooLargeError(
                f"blob too large: {len(data)} bytes exceeds {self.config.max_blob_bytes}"
            )
        if retention is None:
            retention = self.config.default_retention()
            logger.warning(
                "Blob stored without explicit retention; sending default %s",
                retention.query_params(),
            )
        self._check_retention(retention)

        client = await self._ensure_client()
        url = f"{self.config.publisher_base.rstrip('/')}{BLOBS_PATH}"
        params = retention.query_params()
        last_error = "no attempt made"

        try:
            async with asyncio.timeout(self.config.total_timeout_seconds):
                for attempt in range(1, self.config.max_attempts + 1):
                    try:
                        response = await client.put(
                            url,
                            params=params,
                            content=data,
                            headers=self._upload_headers(content_type),
                            timeout=self.config.attempt_timeout_seconds,
                        )
                    except httpx.TransportError as exc:
                        last_error = f"{type(exc).__name__}: {exc}"
                        logger.warning(
                            "Blob upload attempt %d/%d failed: %s",
                            attempt,
                            self.config.max_attempts,
                            last_error,
                        )
                    else:
                        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
                            last_error = (
                                f"HTTP {response.status_code}: {truncate_detail(response.text)}"
                            )
                            logger.warning(
                                "Blob upload attempt %d/%d got %s",
                                attempt,
                                self.config.max_attempts,
                                last_error,
                            )
                        else:
                            return self._accept_upload(response, data, content_type, retention)

                    if attempt < self.config.max_attempts:
                        await self._sleep(self.config.backoff_base_seconds * 2 ** (attempt - 1))
        except TimeoutError as exc:
            raise BlobStoreUnavailableError(
                f"blob store timed out after {self.config.total_timeout_seconds:g}s"
            ) from exc

        raise BlobStoreUnavailableError(
            f"blob store unavailable after {self.config.max_attempts} attempts: {last_error}"
        )

    def _accept_upload(
        self,
        response: httpx.Response,
        data: bytes,
        content_type: str,
        retention: RetentionPolicy,
    ) -> StoredBlob:
        if not response.is_success:
            raise BlobStoreRejectedError(
                f"blob upload rejected (HTTP {response.status_code}): "
                f"{truncate_detail(response.text)}"
            )
        try:
            body = response.json()
        except ValueError:
            body = None
        blob_id, newly_created = extract_blob_id(body)
        if not blob_id:
            raise BlobStoreRejectedError("no blobId in blob store response")

        logger.info(
            "Stored blob %s (%d bytes, %s, retention %s)",
            blob_id,
            len(data),
            content_type,
            retention.query_params(),
        )
        return StoredBlob(
            blob_id=blob_id,
            size=len(data),
            content_type=content_type,
            retention=retention,
            newly_created=newly_created,
        )

    async def fetch(self, blob_id: str) -> FetchedBlob:
        """Read a blob through the aggregator. Single attempt, no retry."""
        if not blob_id:
            raise ValidationError("blob id is required")
        client = await self._ensure_client()
        try:
            response = await client.get(
                self.blob_url(blob_id),
                timeout=self.config.attempt_timeout_seconds,
            )
        except httpx.TransportError as exc:
            raise BlobStoreUnavailableError(f"blob fetch failed: {type(exc).__name__}") from exc

        if response.status_code == HTTP_NOT_FOUND:
            raise BlobNotFoundError("image not found")
        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            raise BlobStoreUnavailableError(f"blob fetch failed (HTTP {response.status_code})")
        if not response.is_success:
            raise BlobStoreRejectedError(f"blob fetch failed (HTTP {response.status_code})")

        content_type = response.headers.get("content-type", DEFAULT_CONTENT_TYPE)
        return FetchedBlob(data=response.content, content_type=content_type)

    async def close(self) -> None:
        """Clean up the HTTP client if this store created it."""
        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.aclose()
            self._client = None
