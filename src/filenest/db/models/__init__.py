"""SQLAlchemy ORM models for FileNest.

This package contains all database models organized by domain:
- base: Common metadata, column types, and enums
- users: Users and billing subscriptions
- requests: File requests and uploaded files
"""

from filenest.db.models.base import Base, RequestStatus, SubscriptionTier, metadata
from filenest.db.models.requests import FileRequest, UploadedFile
from filenest.db.models.users import Subscription, User

__all__ = [
    "Base",
    "FileRequest",
    "RequestStatus",
    "Subscription",
    "SubscriptionTier",
    "UploadedFile",
    "User",
    "metadata",
]
