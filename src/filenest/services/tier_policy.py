"""Subscription tier policy.

Maps a subscription tier to its fixed limits. Pure and total: any unknown
or missing tier resolves to the FREE limits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from filenest.db.models.base import SubscriptionTier

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True, slots=True)
class Limits:
    """Quotas and lifetime granted by a subscription tier.

    Attributes:
        max_storage_mb: Total stored megabytes allowed per request.
        max_file_size_mb: Largest single file accepted, in megabytes.
        max_upload_files: Most files accepted in one upload batch.
        max_requests_per_month: Requests a user may create per calendar month.
        allows_team_access: Team sharing feature flag.
        allows_advanced_analytics: Analytics feature flag.
        expiry_days: Lifetime of a request, counted from its creation.
    """

    max_storage_mb: int
    max_file_size_mb: int
    max_upload_files: int
    max_requests_per_month: int
    allows_team_access: bool
    allows_advanced_analytics: bool
    expiry_days: int

    @property
    def lifetime(self) -> timedelta:
        return timedelta(days=self.expiry_days)


TIER_LIMITS: dict[SubscriptionTier, Limits] = {
    SubscriptionTier.FREE: Limits(
        max_storage_mb=100,
        max_file_size_mb=10,
        max_upload_files=5,
        max_requests_per_month=10,
        allows_team_access=False,
        allows_advanced_analytics=False,
        expiry_days=7,
    ),
    SubscriptionTier.PREMIUM: Limits(
        max_storage_mb=1000,
        max_file_size_mb=100,
        max_upload_files=100,
        max_requests_per_month=100,
        allows_team_access=True,
        allows_advanced_analytics=True,
        expiry_days=30,
    ),
}

# Tiers ordered from least to most generous, for upgrade suggestions
TIER_ORDER: tuple[SubscriptionTier, ...] = (SubscriptionTier.FREE, SubscriptionTier.PREMIUM)


def coerce_tier(value: SubscriptionTier | str | None) -> SubscriptionTier:
    """Normalize a stored or external tier value.

    Args:
        value: Enum member, raw string (any case) or None.

    Returns:
        The matching tier, or FREE when the value is missing or unknown.
    """
    if isinstance(value, SubscriptionTier):
        return value
    if isinstance(value, str):
        try:
            return SubscriptionTier(value.strip().lower())
        except ValueError:
            logger.warning("Unknown subscription tier %r, using free", value)
    return SubscriptionTier.FREE


def limits_for(tier: SubscriptionTier | str | None) -> Limits:
    """Get the limits for a tier.

    Args:
        tier: Tier enum, raw tier string, or None.

    Returns:
        The tier's Limits; FREE limits for unknown or missing tiers.
    """
    return TIER_LIMITS[coerce_tier(tier)]


def higher_tiers(tier: SubscriptionTier | str | None) -> list[SubscriptionTier]:
    """List the tiers above ``tier``, least generous first."""
    current = coerce_tier(tier)
    return list(TIER_ORDER[TIER_ORDER.index(current) + 1 :])
