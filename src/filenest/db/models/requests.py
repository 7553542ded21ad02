"""File request and uploaded file models.

Field ownership inside the service:
- ``FileRequest.is_active``: expiry reconciler (true -> false only)
- ``FileRequest.last_reminder_sent_at``: reminder notifier (watermark)
- ``FileRequest.user_id``: integrity reconciler (null -> value only);
  the creation path may set it on insert
- ``FileRequest.status``: upload path
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, Enum, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from filenest.db.models.base import (
    Base,
    OptionalTimestampTZ,
    RequestStatus,
    TimestampTZ,
    UUIDPrimaryKey,
    enum_values,
)

if TYPE_CHECKING:
    from filenest.db.models.users import User


class FileRequest(Base):
    """A request for files, reachable by recipients through ``unique_link``.

    ``expires_at`` is computed once at creation from the tier in force at that
    time. The expiry reconciler recomputes the effective expiry on every pass
    and treats this column as a display cache.
    """

    __tablename__ = "file_requests"

    request_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    # Nullable: rows created through the recipient-email flow stay orphaned
    # until the integrity reconciler links them
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
    )

    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)

    # Recipient-facing soft due date
    deadline: Mapped[OptionalTimestampTZ]

    status: Mapped[RequestStatus] = mapped_column(
        Enum(
            RequestStatus,
            name="request_status",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        default=RequestStatus.PENDING,
    )

    # Public slug used in upload URLs
    unique_link: Mapped[str] = mapped_column(String(32), nullable=False)

    expires_at: Mapped[TimestampTZ]
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    last_reminder_sent_at: Mapped[OptionalTimestampTZ]

    # Relationships
    user: Mapped[User | None] = relationship("User", back_populates="file_requests")
    uploaded_files: Mapped[list[UploadedFile]] = relationship(
        "UploadedFile",
        back_populates="request",
    )

    __table_args__ = (
        Index("uq_file_requests_unique_link", "unique_link", unique=True),
        Index("ix_file_requests_user_id_created_at", "user_id", "created_at"),
        Index("ix_file_requests_is_active", "is_active"),
        Index("ix_file_requests_status_is_active", "status", "is_active"),
    )


class UploadedFile(Base):
    """A stored file uploaded against a request.

    Bytes live in object storage at ``storage_path``; only metadata is kept
    here. A null ``request_id`` marks an orphan that cannot be re-attributed.
    """

    __tablename__ = "uploaded_files"

    file_id: Mapped[UUIDPrimaryKey]
    uploaded_at: Mapped[TimestampTZ]

    request_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("file_requests.request_id", ondelete="SET NULL"),
        nullable=True,
    )

    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    content_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    request: Mapped[FileRequest | None] = relationship(
        "FileRequest",
        back_populates="uploaded_files",
    )

    __table_args__ = (Index("ix_uploaded_files_request_id", "request_id"),)
