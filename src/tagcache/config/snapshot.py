"""
tagcache - Configuration Snapshot

Reads and writes the canonical finalized configuration. The snapshot is always
replaced as a whole: it is written to a temporary file in the same directory
and moved into place with os.replace, so a reader sees either the previous or
the new snapshot, never a partial one.
"""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..errors import ConfigCorruptError, ConfigurationError
from .schemas import FinalizedConfig

logger = logging.getLogger(__name__)


def write_snapshot(config: FinalizedConfig, path: str | Path) -> Path:
    """
    Atomically replace the snapshot at path.

    Raises:
        ConfigurationError: If the snapshot cannot be written
    """
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(config.model_dump_json(indent=2))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise ConfigurationError(
            f"Failed to write configuration snapshot: {e}",
            details={"path": str(target), "error": str(e)},
        ) from e

    logger.info(
        f"Wrote configuration snapshot with {len(config.pools)} pool(s)",
        extra={"path": str(target), "enabled": config.enabled_pools()},
    )
    return target


def read_snapshot(path: str | Path, strict: bool = False) -> FinalizedConfig:
    """
    Load the snapshot at path.

    A missing, unreadable or unparseable snapshot yields an empty
    configuration (no pools enabled) unless strict is set.

    Raises:
        ConfigCorruptError: In strict mode, if the snapshot is missing or invalid
    """
    source = Path(path)
    try:
        return FinalizedConfig.model_validate_json(source.read_bytes())
    except FileNotFoundError as e:
        if strict:
            raise ConfigCorruptError("Configuration snapshot not found", {"path": str(source)}) from e
        logger.info(f"No configuration snapshot at {source}; no pools enabled")
    except (OSError, ValidationError, ValueError) as e:
        error = ConfigCorruptError(
            f"Configuration snapshot is unreadable: {e}",
            {"path": str(source), "error": str(e)},
        )
        if strict:
            raise error from e
        logger.error(error.message, extra={"error_code": error.code.value, **error.details})
    return FinalizedConfig()
