"""Cached settings accessor for FileNest processes.

The API, the worker and ``filenest-admin`` all call ``get_settings()`` once at
start-up. An invalid environment stops the process with exit code 1 after
logging every offending field; nothing runs on partial configuration.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING

from pydantic import ValidationError

from filenest.core.config import ConfigValidationError, Settings, validate_settings

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails

logger = logging.getLogger(__name__)


def _describe(errors: list[ErrorDetails]) -> str:
    return "\n".join(
        f"  - {'.'.join(str(part) for part in error['loc']) or 'settings'}: {error['msg']}"
        for error in errors
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load ``FILENEST_*`` settings once per process.

    Raises:
        SystemExit: If the environment does not describe a valid configuration.
    """
    try:
        settings = Settings()  # type: ignore[call-arg]
        validate_settings(settings)
    except ValidationError as e:
        logger.critical("Invalid FileNest configuration:\n%s", _describe(e.errors()))
        raise SystemExit(1) from e
    except ConfigValidationError as e:
        logger.critical(
            "Invalid FileNest configuration: %s (field: %s)", e.message, e.field or "unknown"
        )
        raise SystemExit(1) from e

    logger.info(
        "Configuration loaded: environment=%s, reminders_enabled=%s, policy_hash=%s",
        settings.environment.value,
        settings.reconciler.reminders_enabled,
        settings.get_policy_hash()[:16],
    )
    return settings


def clear_settings_cache() -> None:
    """Forget the loaded settings so the next call re-reads the environment."""
    get_settings.cache_clear()
