"""Admin API key authentication.

Operator endpoints require the shared key from ``FILENEST_ADMIN_API_KEY`` in
the X-API-Key header. With no key configured the admin endpoints are closed.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Depends, Header

from filenest.api.dependencies import AppSettings
from filenest.api.middleware.errors import AuthenticationError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


async def require_admin_key(
    settings: AppSettings,
    x_api_key: Annotated[str | None, Header(alias=API_KEY_HEADER)] = None,
) -> None:
    """Reject the request unless it carries the admin API key.

    Raises:
        AuthenticationError: If the key is missing, wrong, or not configured.
    """
    if settings.admin_api_key is None or not settings.admin_api_key.get_secret_value():
        logger.warning("Admin endpoint called but no admin API key is configured")
        raise AuthenticationError("Admin API is not configured")

    if not x_api_key or not hmac.compare_digest(
        x_api_key.encode(), settings.admin_api_key.get_secret_value().encode()
    ):
        logger.warning("Admin endpoint called with a missing or invalid API key")
        raise AuthenticationError("Invalid or missing API key")


AdminKey = Annotated[None, Depends(require_admin_key)]
