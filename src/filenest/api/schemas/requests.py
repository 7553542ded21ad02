"""Schemas for the file request endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from filenest.db.models.base import RequestStatus


class CreateFileRequest(BaseModel):
    """Body of POST /requests.

    ``user_id`` is the authenticated requester as forwarded by the upstream
    gateway. Without it the request is charged to the user owning
    ``recipient_email``, which is created if needed.
    """

    description: str = Field(..., min_length=1, max_length=1000)
    recipient_email: EmailStr | None = Field(None, description="Who should upload the files")
    deadline: datetime | None = Field(None, description="Soft upload deadline")
    user_id: UUID | None = Field(None, description="Authenticated requester")

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def require_owner(self) -> CreateFileRequest:
        if self.user_id is None and self.recipient_email is None:
            msg = "Either user_id or recipient_email is required"
            raise ValueError(msg)
        return self


class FileRequestResponse(BaseModel):
    """A file request as shown to its owner."""

    request_id: UUID
    unique_link: str
    upload_link: str
    description: str
    recipient_email: str | None
    deadline: datetime | None
    status: RequestStatus
    created_at: datetime
    expires_at: datetime
    is_active: bool


class PublicFileRequestResponse(BaseModel):
    """What the upload page shows a recipient."""

    unique_link: str
    description: str
    deadline: datetime | None
    expires_at: datetime


class UploadCheckRequest(BaseModel):
    """Body of POST /requests/{link}/upload-check."""

    file_sizes: list[int] = Field(..., min_length=1, description="Byte size of each file")

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def sizes_not_negative(self) -> UploadCheckRequest:
        if any(size < 0 for size in self.file_sizes):
            msg = "File sizes must not be negative"
            raise ValueError(msg)
        return self


class UploadCheckResponse(BaseModel):
    """An accepted upload batch, in megabytes."""

    allowed: bool
    tier: str | None
    limit: float
    current: float
    needed: float
