"""
Settings for GenoScale with validation and environment support.
"""

from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings

VALID_BACKENDS = ["serial", "thread", "process", "dask"]


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str | None = Field(default=None, description="Log file path")
    structured: bool = Field(default=False, description="Flat formatter for the log file")
    performance_log_enabled: bool = Field(
        default=False, description="Enable performance logging"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v

    model_config = ConfigDict(env_prefix="LOG_")


class ChunkSettings(BaseSettings):
    """Chunked reading configuration."""

    chunk_size: int = Field(default=100_000, ge=1, description="Records per chunk")

    model_config = ConfigDict(env_prefix="CHUNK_")


class DispatchSettings(BaseSettings):
    """Worker pool configuration for the task dispatcher."""

    workers: int = Field(default=4, ge=1, le=512)
    timeout: float | None = Field(
        default=None, gt=0, description="Per-task timeout in seconds (None disables)"
    )
    backend: str = Field(default="thread", description="serial, thread, process or dask")
    log_threshold: str = Field(default="INFO", description="Minimum forwarded task log level")
    capture_logs: bool = Field(default=True, description="Capture task logger records")
    scheduler_address: str | None = Field(
        default=None, description="Dask scheduler address for the dask backend"
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v):
        v = v.lower()
        if v not in VALID_BACKENDS:
            raise ValueError(f"backend must be one of {VALID_BACKENDS}")
        return v

    @field_validator("log_threshold")
    @classmethod
    def validate_log_threshold(cls, v):
        v = v.upper()
        if v == "WARNING":
            v = "WARN"
        valid_levels = ["DEBUG", "INFO", "WARN", "ERROR"]
        if v not in valid_levels:
            raise ValueError(f"log_threshold must be one of {valid_levels}")
        return v

    model_config = ConfigDict(env_prefix="DISPATCH_", validate_assignment=True)


class Settings(BaseSettings):
    """Main application settings."""

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    chunks: ChunkSettings = Field(default_factory=ChunkSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global _settings
    _settings = Settings()
    return _settings
