"""
Application configuration using Pydantic Settings.

Settings are grouped by concern and can be overridden from the environment
with the ``IMAGE_SERVICE_`` prefix, e.g. ``IMAGE_SERVICE_SYSTEM__LOG_LEVEL=DEBUG``.
"""

from functools import lru_cache
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.constants import MattingDefaults, UploadConstants
from core.enums import UnknownOperationPolicy


class APISettings(BaseModel):
    """HTTP server settings"""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    cors_enabled: bool = True
    cors_origins: List[str] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


class StorageSettings(BaseModel):
    """Output asset storage settings"""

    output_dir: str = "uploads/processed"
    matting_output_dir: str = "uploads/bg-processed"
    max_upload_mb: int = Field(default=UploadConstants.MAX_UPLOAD_SIZE_MB, ge=1)


class EngineSettings(BaseModel):
    """Raster engine tuning, applied once at engine construction"""

    cache_enabled: bool = True
    cache_max_items: int = Field(default=32, ge=1)
    concurrency: int = Field(default=0, ge=0, description="Worker threads (0 = library default)")
    simd: bool = True


class PipelineSettings(BaseModel):
    """Operation pipeline behavior"""

    unknown_operation_policy: UnknownOperationPolicy = UnknownOperationPolicy.FAIL


class MattingSettings(BaseModel):
    """ML background removal settings"""

    url_fetch_timeout: float = Field(default=MattingDefaults.URL_FETCH_TIMEOUT_SECONDS, gt=0)
    allow_private_hosts: bool = Field(
        default=False, description="Allow URL fetches that resolve to private or loopback addresses"
    )


class SystemSettings(BaseModel):
    """Process-level settings"""

    log_level: str = "INFO"
    debug: bool = False

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level


class Settings(BaseSettings):
    """Root settings object"""

    environment: str = "development"
    api: APISettings = APISettings()
    storage: StorageSettings = StorageSettings()
    engine: EngineSettings = EngineSettings()
    pipeline: PipelineSettings = PipelineSettings()
    matting: MattingSettings = MattingSettings()
    system: SystemSettings = SystemSettings()

    model_config = SettingsConfigDict(
        env_prefix="IMAGE_SERVICE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict view, stored on app state for the config endpoint."""
        return self.model_dump()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
