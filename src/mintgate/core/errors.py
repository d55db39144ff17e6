"""Error taxonomy shared by the mint pipeline and the blob store.

Every error carries a user-safe message, the HTTP status it maps to and
whether the client may retry the same request.
"""

from __future__ import annotations

UPSTREAM_DETAIL_LIMIT = 200


def truncate_detail(text: str | None, limit: int = UPSTREAM_DETAIL_LIMIT) -> str:
    """Shorten upstream error text before it reaches a response body."""
    if not text:
        return ""
    cleaned = " ".join(text.split())
    if len(cleaned) <= limit:
        return cleaned
    return cleaned[: limit - 3] + "..."


class MintGateError(Exception):
    """Base class for errors rendered as ``{"success": false, "error": ...}``."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(MintGateError):
    """Malformed request: bad shape, missing field, invalid address."""

    status_code = 400


class NotFoundError(MintGateError):
    """The referenced event does not exist."""

    status_code = 404


class AlreadyMintedError(MintGateError):
    """The address already holds a mint record for the event."""

    status_code = 400


class CapReachedError(MintGateError):
    """The event reached its total mint cap."""

    status_code = 400


class SignatureError(MintGateError):
    """The wallet signature did not verify."""

    status_code = 400


class LedgerUnavailableError(MintGateError):
    """The key-value ledger could not be read before delegation."""

    status_code = 500
    retryable = True


class LedgerWriteError(MintGateError):
    """Post-success bookkeeping failed. Logged, never returned to callers."""


class MintTimeoutError(MintGateError):
    """The overall per-request mint deadline expired."""

    status_code = 504
    retryable = True


class SponsorError(MintGateError):
    """Base class for sponsor delegation failures."""

    status_code = 502
    retryable = True


class SponsorTimeoutError(SponsorError):
    """The sponsor did not answer within its deadline."""


class SponsorUpstreamError(SponsorError):
    """The sponsor answered with an error or an unusable body."""


class SponsorNotConfiguredError(SponsorError):
    """No sponsor endpoint is configured."""

    status_code = 500
    retryable = False


class BlobStoreError(MintGateError):
    """Base class for blob storage failures."""

    status_code = 502


class BlobTooLargeError(BlobStoreError):
    """Payload exceeds the upstream size ceiling; rejected locally."""

    status_code = 413


class BlobNotFoundError(BlobStoreError):
    """The aggregator has no blob under the requested id."""

    status_code = 404


class BlobStoreRejectedError(BlobStoreError):
    """The publisher refused the upload or returned no blob id."""


class BlobStoreUnavailableError(BlobStoreError):
    """The backend kept failing with retryable conditions."""

    retryable = True
