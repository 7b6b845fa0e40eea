"""
tagcache - Configuration Loader

Loads runtime settings from environment variables and .env files, and reads
the user-editable raw pool settings file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import TagCacheSettings

logger = logging.getLogger(__name__)

_config_instance: TagCacheSettings | None = None


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> TagCacheSettings:
    """
    Load runtime settings from environment variables and .env file.

    Args:
        env_file: Path to .env file (default: .env in the working directory)
        reload: Force reload even if settings are already loaded

    Returns:
        Validated TagCacheSettings instance

    Raises:
        ConfigurationError: If the settings are invalid
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    env_path = Path(env_file) if env_file else Path.cwd() / ".env"

    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        try:
            load_dotenv(env_path, override=True)
        except Exception as e:
            raise ConfigurationError(
                f"Failed to load environment file: {e}",
                details={"path": str(env_path), "error": str(e)},
            ) from e
    else:
        logger.debug("No .env file found, using environment variables only")

    config_dict: dict[str, Any] = {
        "environment": os.getenv("TAGCACHE_ENVIRONMENT", "development"),
        "log_level": os.getenv("TAGCACHE_LOG_LEVEL", "INFO"),
        "log_json": os.getenv("TAGCACHE_LOG_JSON", "true").lower() == "true",
        "settings_path": os.getenv("TAGCACHE_SETTINGS_PATH", "./data/cache_settings.json"),
        "snapshot_path": os.getenv("TAGCACHE_SNAPSHOT_PATH", "./data/cache_config.json"),
        "default_ttl": os.getenv("TAGCACHE_DEFAULT_TTL", "-1"),
    }

    try:
        _config_instance = TagCacheSettings(**config_dict)
        logger.info(
            f"Configuration loaded successfully (environment: {_config_instance.environment})",
            extra={"environment": _config_instance.environment, "snapshot_path": _config_instance.snapshot_path},
        )
        return _config_instance
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"validation_errors": e.errors(include_url=False)},
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your TAGCACHE_* environment variables.",
            details={"validation_errors": e.errors(include_url=False)},
        ) from e


def get_config() -> TagCacheSettings:
    """Return the current settings, loading them on first access."""
    if _config_instance is None:
        return load_config()
    return _config_instance


def reload_config(env_file: str | None = None) -> TagCacheSettings:
    """Force reload of the runtime settings."""
    return load_config(env_file=env_file, reload=True)


def load_raw_settings(path: str | Path) -> dict[str, dict[str, Any]]:
    """
    Read the user-editable raw pool settings.

    The file holds a JSON object mapping pool names to settings objects.
    Entries that are not objects are ignored here and reported by the
    reconciler as disabled pools.

    Raises:
        ConfigurationError: If the file exists but is not a JSON object
    """
    settings_path = Path(path)
    if not settings_path.exists():
        logger.debug(f"No raw cache settings at {settings_path}")
        return {}

    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(
            f"Failed to read cache settings: {e}",
            details={"path": str(settings_path), "error": str(e)},
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            "Cache settings must be a JSON object of pool name to settings",
            details={"path": str(settings_path), "type": type(data).__name__},
        )
    return data
