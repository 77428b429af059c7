"""
System API models.

This module contains models for service status and engine tuning.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EngineSettingsUpdate(BaseModel):
    """Partial engine reconfiguration; omitted fields keep their value"""

    cache_enabled: Optional[bool] = None
    cache_max_items: Optional[int] = Field(default=None, ge=0)
    concurrency: Optional[int] = Field(default=None, ge=0, description="0 = library default")
    simd: Optional[bool] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class EngineStatus(BaseModel):
    """Effective engine configuration and cache counters"""

    config: Dict[str, Any]
    cache: Dict[str, Any]
    threads: int
    simd: bool


class SystemStatus(BaseModel):
    """Service status"""

    status: str
    uptime: float
    memory_usage: Dict[str, float]
    engine: EngineStatus
    stored_outputs: int
