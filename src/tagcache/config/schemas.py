"""
tagcache - Configuration Schemas

Typed configuration models using Pydantic.

Two layers of pool configuration exist:
- RawPoolSettings: loosely structured, user-editable settings, possibly with
  stray or driver-prefixed keys ("redis_url", "memcached_servers", ...)
- FinalizedConfig: the reconciled, canonical per-pool configuration that pools
  are constructed from. A finalized pool is either owned (its own driver and
  options) or an alias of one of the reserved contexts.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class PoolContext(str, Enum):
    """Reserved cache contexts."""

    PAGE = "page"
    OBJECT = "object"
    TRANSIENT = "transient"


RESERVED_CONTEXTS: tuple[str, ...] = tuple(c.value for c in PoolContext)


class RawPoolSettings(BaseModel):
    """User-editable settings for one pool; driver options arrive as extra keys."""

    model_config = ConfigDict(extra="allow")

    type: str | bool | None = Field(default=None, description="Driver name, reserved context alias or 'disabled'")
    enabled: bool | None = Field(default=None, description="Explicit enable flag (defaults to True)")

    def prefixed_options(self, prefix: str) -> dict[str, Any]:
        """Return the extra keys starting with '<prefix>_', prefix stripped."""
        marker = f"{prefix}_"
        return {key[len(marker) :]: value for key, value in (self.model_extra or {}).items() if key.startswith(marker)}


class OwnedPoolConfig(BaseModel):
    """Finalized pool with its own driver."""

    kind: Literal["owned"] = "owned"
    type: str | None = Field(default=None, description="Driver name; None when no usable driver is configured")
    enabled: bool = Field(default=False)
    options: dict[str, Any] = Field(default_factory=dict, description="Validated driver options")


class AliasPoolConfig(BaseModel):
    """Finalized pool that shares the pool of a reserved context."""

    kind: Literal["alias"] = "alias"
    alias_of: PoolContext
    enabled: bool = True

    @property
    def type(self) -> str:
        return self.alias_of.value


PoolConfig = Annotated[OwnedPoolConfig | AliasPoolConfig, Field(discriminator="kind")]


class FinalizedConfig(BaseModel):
    """Canonical configuration snapshot consumed at pool construction."""

    version: int = 1
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    pools: dict[str, PoolConfig] = Field(default_factory=dict)

    def enabled_pools(self) -> list[str]:
        return [name for name, pool in self.pools.items() if pool.enabled]


class TagCacheSettings(BaseModel):
    """Root runtime settings (loaded from environment variables)."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    settings_path: str = Field(
        default="./data/cache_settings.json",
        description="User-editable raw pool settings (JSON mapping of pool name to settings)",
    )
    snapshot_path: str = Field(
        default="./data/cache_config.json",
        description="Canonical finalized configuration snapshot",
    )
    default_ttl: int = Field(default=-1, ge=-1, description="Default TTL for facade writes (-1 = never expire)")

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True, validate_default=True)
