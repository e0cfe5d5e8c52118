"""Configuration models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PoolConfig(BaseModel):
    """Sizing and timing of a ConnectionPool. Durations are in seconds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_size: int = Field(default=0, ge=0)
    """Connections kept open even when idle."""
    max_size: int = Field(default=10, ge=1)
    """Upper bound of open connections (idle and in use)."""
    acquire_timeout: float = Field(default=30.0, gt=0)
    """Default time acquire() waits for a connection before failing."""
    idle_timeout: float = Field(default=300.0, gt=0)
    """Idle time after which connections above min_size are closed."""
    maintenance_interval: float = Field(default=60.0, gt=0)
    """Period of the background maintenance task."""
    shutdown_grace_period: float = Field(default=5.0, ge=0)
    """Time shutdown() waits for in-use connections before closing them."""
    validate_on_release: bool = True
    """Run the dialect's validation query when a connection is released."""

    @model_validator(mode="after")
    def _check_sizes(self) -> "PoolConfig":
        if self.min_size > self.max_size:
            raise ValueError(
                f"min_size ({self.min_size}) cannot exceed max_size ({self.max_size})"
            )
        return self

    def with_overrides(self, **options: Optional[object]) -> "PoolConfig":
        """Return a copy with the given (non-None) options replaced, validated."""
        data = self.model_dump()
        data.update({k: v for k, v in options.items() if v is not None})
        return type(self)(**data)
