"""Configuration management using Pydantic Settings."""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarnessSettings(BaseSettings):
    """Execution engine configuration.

    Controls iteration counts, run deadlines and allocation tracking.
    """

    model_config = SettingsConfigDict(
        env_prefix="PERFBENCH_HARNESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    warmup_iterations: int = Field(
        default=3,
        ge=0,
        le=10000,
        description="Discarded iterations before measurement",
    )

    measured_iterations: int = Field(
        default=20,
        ge=1,
        le=1_000_000,
        description="Timed iterations per parameter combination",
    )

    run_timeout_seconds: float | None = Field(
        default=600.0,
        description="Deadline per run in seconds (None disables the deadline)",
    )

    track_allocations: bool = Field(
        default=False,
        description="Record per-iteration allocation peaks with tracemalloc (slow)",
    )

    @field_validator("run_timeout_seconds")
    @classmethod
    def validate_run_timeout(cls, v: float | None) -> float | None:
        """Validate the deadline is positive when set."""
        if v is not None and v <= 0:
            raise ValueError("run_timeout_seconds must be > 0 (or unset)")
        return v


class ServerSettings(BaseSettings):
    """Echo server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PERFBENCH_SERVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(
        default="127.0.0.1",
        description="Server bind address",
    )

    port: int = Field(
        default=0,
        ge=0,
        le=65535,
        description="Server port (0 = ephemeral port chosen at bind time)",
    )

    startup_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Maximum wait for the server to accept connections",
    )

    ws_max_message_bytes: int = Field(
        default=16 * 1024 * 1024,
        ge=1024,
        description="Largest reassembled WebSocket message accepted",
    )

    upload_chunk_bytes: int = Field(
        default=64 * 1024,
        ge=1024,
        le=16 * 1024 * 1024,
        description="Read size when draining an uploaded file part",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> object:
        """Accept lowercase level names from the environment."""
        return v.upper() if isinstance(v, str) else v


class Settings(BaseSettings):
    """Root settings container.

    Aggregates all subsettings into a single object.

    Example:
        >>> settings = Settings()
        >>> settings.harness.measured_iterations
        20
        >>> settings.server.host
        '127.0.0.1'
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    harness: HarnessSettings = Field(default_factory=HarnessSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings singleton.

    Loads configuration from environment variables and .env file.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings (for testing).

    Forces reload of configuration from environment.

    Returns:
        Fresh Settings instance.
    """
    global _settings
    _settings = Settings()
    return _settings
