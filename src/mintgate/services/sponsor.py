"""Delegation of authorized mints to the transaction-sponsoring service.

The sponsor holds the signing key and pays gas. This client sends it the
smallest useful payload and never retries: a retried call could mint twice
if the first attempt succeeded upstream, so idempotency lives in the ledger.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from mintgate.core.errors import (
    SponsorNotConfiguredError,
    SponsorTimeoutError,
    SponsorUpstreamError,
    truncate_detail,
)
from mintgate.core.settings import Settings
from mintgate.schemas.event import MintEvent

logger = logging.getLogger(__name__)

MINT_PATH = "/api/mint"


@dataclass(frozen=True)
class SponsorConfig:
    """Immutable configuration for sponsor delegation."""

    base_url: str | None
    timeout_seconds: float = 20.0


def load_sponsor_config(settings: Settings) -> SponsorConfig:
    return SponsorConfig(
        base_url=settings.mint_sponsor_api_url,
        timeout_seconds=float(settings.sponsor_timeout_seconds),
    )


def build_sponsor_payload(event: MintEvent, recipient: str) -> dict[str, Any]:
    """Transaction template, recipient and artwork reference; nothing else."""
    return {
        "recipient": recipient,
        "moveCall": event.move_call,
        "imageCid": event.image_cid,
        "imageMimeType": event.image_mime_type,
    }


def extract_tx_digest(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    digest = body.get("txDigest")
    if not digest and isinstance(body.get("data"), dict):
        digest = body["data"].get("txDigest")
    return digest if isinstance(digest, str) and digest else None


class SponsorDelegator:
    """HTTP client wrapper for the sponsor's mint endpoint."""

    def __init__(
        self,
        config: SponsorConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.config.base_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                )
        return self._client

    async def delegate(self, event: MintEvent, recipient: str) -> str:
        """Ask the sponsor to mint ``event`` to ``recipient``.

        Returns:
            The transaction digest reported by the sponsor.

        Raises:
            SponsorNotConfiguredError: No sponsor URL is configured.
            SponsorTimeoutError: The deadline expired before an answer.
            SponsorUpstreamError: Non-2xx, unparsable body, or no digest.
        """
        if not self.configured:
            raise SponsorNotConfiguredError("sponsor endpoint is not configured")

        client = await self._ensure_client()
        url = f"{(self.config.base_url or '').rstrip('/')}{MINT_PATH}"
        payload = build_sponsor_payload(event, recipient)
        started = time.perf_counter()

        try:
            async with asyncio.timeout(self.config.timeout_seconds):
                response = await client.post(url, json=payload)
        except (TimeoutError, httpx.TimeoutException) as exc:
            logger.warning(
                "Sponsor call for event %s timed out after %.1fs",
                event.id,
                time.perf_counter() - started,
            )
            raise SponsorTimeoutError("sponsor timeout") from exc
        except httpx.HTTPError as exc:
            logger.warning("Sponsor call for event %s failed: %s", event.id, exc)
            raise SponsorUpstreamError(
                f"sponsor request failed: {truncate_detail(str(exc))}"
            ) from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success or not isinstance(body, dict) or body.get("success") is False:
            upstream = body.get("error") if isinstance(body, dict) else None
            detail = truncate_detail(str(upstream) if upstream else response.text)
            logger.warning(
                "Sponsor rejected mint for event %s (%d): %s",
                event.id,
                response.status_code,
                detail,
            )
            message = detail or f"sponsor mint failed ({response.status_code})"
            raise SponsorUpstreamError(message)

        digest = extract_tx_digest(body)
        if digest is None:
            raise SponsorUpstreamError("no transaction digest returned from sponsor")

        logger.info(
            "Sponsor minted event %s for %s in %.2fs: %s",
            event.id,
            recipient,
            time.perf_counter() - started,
            digest,
        )
        return digest

    async def close(self) -> None:
        """Clean up the HTTP client if this delegator created it."""
        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.aclose()
            self._client = None
