"""RDAM Core module.

Shared components used by the API and the worker:
- Configuration management
- Cached settings accessor
"""

from rdam.core.config import (
    ConfigValidationError,
    DatabaseSettings,
    Environment,
    LifecycleSettings,
    PaymentMode,
    PaymentSettings,
    RedisSettings,
    S3Settings,
    Settings,
    SMTPSettings,
)
from rdam.core.settings import clear_settings_cache, get_settings, load_settings

__all__ = [
    "ConfigValidationError",
    "DatabaseSettings",
    "Environment",
    "LifecycleSettings",
    "PaymentMode",
    "PaymentSettings",
    "RedisSettings",
    "S3Settings",
    "SMTPSettings",
    "Settings",
    "clear_settings_cache",
    "get_settings",
    "load_settings",
]
