"""Schemas for the mint and mint-check endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MintRequest(BaseModel):
    """Body of ``POST /api/mint``."""

    event_id: str = Field(..., alias="eventId", min_length=1)
    address: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1, description="Base64 wallet signature")
    bytes: list[int] | str | None = Field(
        None,
        description="Signed message as a byte array or an encoded string",
    )
    public_key: str | None = Field(None, alias="publicKey")
    auth_message: str = Field(..., alias="authMessage", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class MintResultOut(BaseModel):
    tx_digest: str = Field(..., serialization_alias="txDigest")


class MintResponse(BaseModel):
    """Successful mint response."""

    success: bool = True
    data: MintResultOut


class MintCheckResponse(BaseModel):
    success: bool = True
    already_minted: bool = Field(..., serialization_alias="alreadyMinted")
