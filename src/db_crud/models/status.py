"""Operational status models (cache, health, pool)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CacheStats(BaseModel):
    """Snapshot of the query cache."""

    size: int = Field(..., description="Number of cached entries")
    enabled: bool = Field(..., description="Whether caching is enabled")
    expiry_ms: int = Field(..., description="Entry lifetime in milliseconds")
    hits: int = Field(default=0)
    misses: int = Field(default=0)
    tables: list[str] = Field(
        default_factory=list, description="Tables with at least one cached entry"
    )


class HealthStatus(BaseModel):
    """Result of a connectivity probe."""

    status: str = Field(..., description="'healthy' or 'unhealthy'")
    timestamp: datetime
    error: Optional[str] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"


class PoolInfo(BaseModel):
    """Connection pool counters (zero when the pool does not track them)."""

    pool_class: str
    size: int = 0
    checked_in: int = 0
    checked_out: int = 0
    overflow: int = 0
