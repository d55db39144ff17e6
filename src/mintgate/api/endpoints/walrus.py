"""Blob upload, download and configuration endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, Request, Response
from starlette.datastructures import UploadFile

from mintgate.api.dependencies import BlobStoreDep
from mintgate.core.errors import BlobTooLargeError, ValidationError
from mintgate.schemas.blob import BlobStoreResponse, StoredBlobOut, WalrusConfigOut
from mintgate.services.blob_store import RetentionPolicy

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"
MULTIPART_PREFIX = "multipart/form-data"
IMAGE_PREFIX = "image/"

router = APIRouter(tags=["walrus"])


async def _read_upload(request: Request) -> tuple[bytes, str]:
    """Return the payload and its content type from a raw or multipart body."""
    header = request.headers.get("content-type", "")
    if header.startswith(MULTIPART_PREFIX):
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            raise ValidationError("file is required")
        data = await upload.read()
        return data, (upload.content_type or "").split(";")[0].strip().lower()
    data = await request.body()
    return data, header.split(";")[0].strip().lower()


@router.post("/api/walrus/store", response_model=BlobStoreResponse)
async def store_blob(
    request: Request,
    blob_store: BlobStoreDep,
    epochs: Annotated[str | None, Query()] = None,
    permanent: Annotated[str | None, Query()] = None,
    deletable: Annotated[str | None, Query()] = None,
) -> BlobStoreResponse:
    """Store an image in the blob store with an explicit retention policy.

    The first of ``epochs``, ``permanent`` and ``deletable`` present wins.
    Without any of them the configured default retention is sent.
    """
    try:
        retention = RetentionPolicy.from_query(epochs, permanent, deletable)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if retention is None:
        retention = blob_store.config.default_retention()

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > blob_store.config.max_blob_bytes:
        raise BlobTooLargeError(
            f"blob too large: {declared} bytes exceeds {blob_store.config.max_blob_bytes}"
        )

    data, content_type = await _read_upload(request)
    if not data:
        raise ValidationError("empty upload")
    if not content_type.startswith(IMAGE_PREFIX):
        raise ValidationError("only image uploads are supported")

    stored = await blob_store.store(data, retention, content_type=content_type)
    return BlobStoreResponse(
        data=StoredBlobOut(
            blob_id=stored.blob_id,
            content_type=stored.content_type,
            size=stored.size,
            newly_created=stored.newly_created,
        )
    )


@router.get("/walrus/blobs/{blob_id}")
async def get_blob(blob_id: str, blob_store: BlobStoreDep) -> Response:
    """Serve a stored blob. Blob ids are content hashes, so responses never change."""
    blob = await blob_store.fetch(blob_id)
    return Response(
        content=blob.data,
        media_type=blob.content_type,
        headers={
            "Cache-Control": IMMUTABLE_CACHE_CONTROL,
            "ETag": f'"{blob_id}"',
            "X-Content-Type-Options": "nosniff",
        },
    )


@router.get("/api/walrus/config", response_model=WalrusConfigOut)
async def get_walrus_config(blob_store: BlobStoreDep) -> WalrusConfigOut:
    """Public, secret-free snapshot of the blob store configuration."""
    config = blob_store.config
    return WalrusConfigOut(
        publisher_base=config.publisher_base,
        aggregator_base=config.aggregator_base,
        default_epochs=config.default_epochs,
        default_permanent=config.default_permanent,
        max_blob_bytes=config.max_blob_bytes,
        upload_enabled=True,
    )
