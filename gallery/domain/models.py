"""
Domain models for the gallery service.
"""

import enum
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def format_utc_iso(value: datetime) -> str:
    """Render a timestamp as ISO 8601 UTC with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class FileStatus(str, enum.Enum):
    """Per-file outcome of an upload batch."""

    ACCEPTED = "accepted"
    SKIPPED = "skipped"
    FAILED = "failed"


class UploadRecord(BaseModel):
    """One ledger entry per accepted upload."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    thumb: str = Field(..., min_length=1)
    original_name: str = Field("", alias="originalName")
    mime: str = Field(..., pattern=r"^image/")
    size: int = Field(..., ge=0)
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    created_at: str = Field(..., alias="createdAt")

    @model_validator(mode="after")
    def check_dimensions(self):
        if (self.width is None) != (self.height is None):
            raise ValueError("width and height must both be set or both be null")
        return self

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class FileOutcome(BaseModel):
    """Result reported back to the client for a single uploaded file."""

    model_config = ConfigDict(populate_by_name=True)

    index: int = Field(..., ge=0)
    original_name: str = Field("", alias="originalName")
    status: FileStatus
    reason: Optional[str] = None
    id: Optional[str] = None


class UploadResponse(BaseModel):
    """Response body of the upload endpoint."""

    ok: bool = True
    accepted: int = Field(0, ge=0)
    results: List[FileOutcome] = Field(default_factory=list)
