"""FileNest core module.

Shared components used across all services:
- Configuration management
- Cached settings accessor
"""

from filenest.core.config import (
    ConfigValidationError,
    DatabaseSettings,
    Environment,
    ReconcilerSettings,
    Settings,
    SMTPSettings,
)
from filenest.core.settings import (
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "ConfigValidationError",
    "DatabaseSettings",
    "Environment",
    "ReconcilerSettings",
    "SMTPSettings",
    "Settings",
    "clear_settings_cache",
    "get_settings",
]
