"""Schemas for the Walrus blob endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class StoredBlobOut(BaseModel):
    blob_id: str = Field(..., serialization_alias="blobId")
    content_type: str = Field(..., serialization_alias="contentType")
    size: int
    newly_created: bool = Field(..., serialization_alias="newlyCreated")


class BlobStoreResponse(BaseModel):
    """Response of ``POST /api/walrus/store``."""

    success: bool = True
    data: StoredBlobOut


class WalrusConfigOut(BaseModel):
    """Public, secret-free view of the blob storage configuration."""

    publisher_base: str = Field(..., serialization_alias="publisherBase")
    aggregator_base: str = Field(..., serialization_alias="aggregatorBase")
    default_epochs: int = Field(..., serialization_alias="defaultEpochs")
    default_permanent: bool = Field(..., serialization_alias="defaultPermanent")
    max_blob_bytes: int = Field(..., serialization_alias="maxBlobBytes")
    upload_enabled: bool = Field(True, serialization_alias="uploadEnabled")
