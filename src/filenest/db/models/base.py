"""Base model definitions, mixins, and common types.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Common annotated column types for timestamps and UUIDs
- Enum types used across multiple models
"""

import enum
import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, MetaData, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Shared metadata with naming convention
metadata = MetaData(naming_convention=NAMING_CONVENTION)

# Custom type registry for reusable type annotations
type_registry = registry()

# UUID primary key with server-side default generation
UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    ),
]

# Timestamp with timezone, defaults to now
TimestampTZ = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("now()")),
]

# Optional timestamp with timezone
OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(DateTime(timezone=True), nullable=True),
]

# Standard string lengths for common fields
ShortString = Annotated[str, mapped_column(String(100))]
MediumString = Annotated[str, mapped_column(String(255))]
LongString = Annotated[str, mapped_column(String(1000))]


class Base(DeclarativeBase):
    """Declarative base for all FileNest models."""

    metadata = metadata
    registry = type_registry


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum members by value (``"free"``) rather than by name (``"FREE"``)."""
    return [member.value for member in enum_cls]


# =============================================================================
# Common Enums
# =============================================================================


class SubscriptionTier(str, enum.Enum):
    """Subscription level governing quota and expiry policy.

    Values:
        FREE: Default tier, also used when no active subscription exists
        PREMIUM: Paid tier with larger quotas and a longer request lifetime
    """

    FREE = "free"
    PREMIUM = "premium"


class RequestStatus(str, enum.Enum):
    """Upload status of a file request.

    Values:
        PENDING: No file uploaded yet
        COMPLETED: The recipient uploaded at least one batch
    """

    PENDING = "pending"
    COMPLETED = "completed"
