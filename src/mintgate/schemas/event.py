"""Schema for mint events as written by the admin surface."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MintEvent(BaseModel):
    """A mintable campaign. Read-only to the mint pipeline."""

    id: str = Field(..., min_length=1)
    name: str | None = None
    active: bool = False
    start_at: datetime = Field(..., alias="startAt")
    end_at: datetime = Field(..., alias="endAt")
    event_date: str | None = Field(None, alias="eventDate")
    total_cap: int | None = Field(None, alias="totalCap", description="Absent means unlimited")
    move_call: dict[str, Any] = Field(default_factory=dict, alias="moveCall")
    collection_id: str = Field("", alias="collectionId")
    image_cid: str | None = Field(None, alias="imageCid")
    image_mime_type: str | None = Field(None, alias="imageMimeType")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("start_at", "end_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _check_window(self) -> MintEvent:
        if self.start_at > self.end_at:
            raise ValueError("startAt must not be after endAt")
        return self

    @property
    def has_cap(self) -> bool:
        """True when a non-negative cap is configured."""
        return self.total_cap is not None and self.total_cap >= 0
