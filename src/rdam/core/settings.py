"""Cached settings accessor shared by the API and the worker.

Configuration is read from the environment once per process. Tests reset
it with clear_settings_cache().
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from rdam.core.config import ConfigValidationError, Settings, validate_settings

logger = logging.getLogger(__name__)


def load_settings() -> Settings:
    """Build settings from the environment and run the runtime checks.

    Raises:
        ValidationError: If a field value is rejected.
        ConfigValidationError: If the combination of values is unusable.
    """
    settings = Settings()
    validate_settings(settings)
    return settings


def describe_validation_error(error: ValidationError) -> str:
    """Render one line per rejected field, located by its dotted path."""
    return "\n".join(
        f"  - {'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process settings.

    Invalid configuration is logged at CRITICAL and ends the process with
    exit status 1.
    """
    try:
        settings = load_settings()
    except ValidationError as e:
        logger.critical("Invalid configuration:\n%s", describe_validation_error(e))
        raise SystemExit(1) from e
    except ConfigValidationError as e:
        logger.critical("Invalid configuration: %s (field: %s)", e.message, e.field or "unknown")
        raise SystemExit(1) from e

    logger.info(
        "Configuration loaded: environment=%s, payment_mode=%s, tramite_prefix=%s, "
        "policy_hash=%.16s",
        settings.environment.value,
        settings.payment.mode.value,
        settings.lifecycle.tramite_prefix,
        settings.get_policy_hash(),
    )
    return settings


def clear_settings_cache() -> None:
    """Forget the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
