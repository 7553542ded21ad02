"""User identities and billing subscriptions.

Users are keyed by a unique email and created lazily (find-or-create) when a
request references an email with no matching user. Subscriptions are written
by the billing integration; the reconcilers only read the active tier.
"""

from __future__ import annotations

# Required at runtime for SQLAlchemy type resolution
import uuid  # noqa: TC003
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from filenest.db.models.base import (
    Base,
    OptionalTimestampTZ,
    SubscriptionTier,
    TimestampTZ,
    UUIDPrimaryKey,
    enum_values,
)

if TYPE_CHECKING:
    from filenest.db.models.requests import FileRequest


class User(Base):
    """Requester identity.

    The unique index on ``email`` backs the find-or-create used by admission
    and integrity repair; concurrent creators for the same new email collide
    on it instead of producing duplicates.
    """

    __tablename__ = "users"

    user_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    subscriptions: Mapped[list[Subscription]] = relationship(
        "Subscription",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    file_requests: Mapped[list[FileRequest]] = relationship(
        "FileRequest",
        back_populates="user",
    )

    __table_args__ = (Index("uq_users_email", "email", unique=True),)


class Subscription(Base):
    """Billing subscription for a user.

    At most one row per user is active. Absence of an active row means the
    FREE tier.
    """

    __tablename__ = "subscriptions"

    subscription_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )

    tier: Mapped[SubscriptionTier] = mapped_column(
        Enum(
            SubscriptionTier,
            name="subscription_tier",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        default=SubscriptionTier.FREE,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    start_date: Mapped[TimestampTZ]
    end_date: Mapped[OptionalTimestampTZ]

    # Billing provider references (opaque to this service)
    provider_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="subscriptions")

    __table_args__ = (
        Index("ix_subscriptions_user_id_active", "user_id", "is_active"),
        # One active subscription per user
        Index(
            "uq_subscriptions_user_id_active",
            "user_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )
