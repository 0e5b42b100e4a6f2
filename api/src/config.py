"""
FastAPI application configuration using Pydantic Settings.

Provides centralized configuration for:
- Server binding (host, port)
- Synthetic load parameters (busy-wait iterations, payload size)
- Form parsing limits
- Diagnostics (profiling) endpoints
- Logging, metrics and tracing

All settings support environment variable overrides and .env file loading.
"""

from functools import lru_cache

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "text")
ENVIRONMENTS = ("development", "staging", "production")


def _one_of(field: str, value: str, allowed: tuple) -> str:
    if value not in allowed:
        raise ValueError(f"{field} must be one of {list(allowed)}, got: {value}")
    return value


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables with the
    prefix "LOAD_API_" (e.g., LOAD_API_PORT).

    Environment variables are loaded from:
    1. System environment
    2. .env file in the current directory
    3. Default values defined below
    """

    # =========================================================================
    # API Settings
    # =========================================================================

    app_name: str = Field(
        default="CPU Load Test Service",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="API version"
    )

    debug: bool = Field(
        default=False,
        description="Debug mode - unhandled errors are answered with a traceback page instead of a bare 500"
    )
    environment: str = Field(
        default="production",
        description="Environment: development|staging|production"
    )

    host: str = Field(
        default="0.0.0.0",
        description="API bind host"
    )
    port: int = Field(
        default=9876,
        description="API bind port",
        gt=0,
        lt=65536
    )

    # =========================================================================
    # Load Settings
    # =========================================================================

    burn_iterations: int = Field(
        default=10000,
        description="Outer iterations of the busy-wait loop run per request",
        ge=0
    )
    payload_length: int = Field(
        default=19999,
        description="Length in bytes of the generated response payload",
        ge=0
    )
    max_form_size: int = Field(
        default=10 << 20,  # 10 MiB
        description="Maximum form-encoded request body size in bytes",
        gt=0
    )

    # =========================================================================
    # Diagnostics Settings
    # =========================================================================

    diagnostics_enabled: bool = Field(
        default=True,
        description="Mount the profiling and introspection endpoints"
    )
    diagnostics_prefix: str = Field(
        default="/debug/pprof",
        description="URL prefix of the diagnostics endpoints"
    )
    profile_default_seconds: int = Field(
        default=30,
        description="CPU profile duration when the request does not specify one",
        ge=1,
        le=300
    )
    profile_sample_interval: float = Field(
        default=0.01,
        description="Seconds between stack samples while profiling",
        gt=0.0,
        le=1.0
    )

    # =========================================================================
    # Monitoring and Observability
    # =========================================================================

    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics"
    )
    metrics_endpoint: str = Field(
        default="/metrics",
        description="Metrics endpoint path"
    )

    tracing_enabled: bool = Field(
        default=False,
        description="Enable OpenTelemetry tracing"
    )
    tracing_otlp_endpoint: str = Field(
        default="http://localhost:4317",
        description="OTLP gRPC collector endpoint"
    )
    tracing_sample_rate: float = Field(
        default=1.0,
        description="Trace sampling rate (0.0-1.0, where 1.0 = 100%)",
        ge=0.0,
        le=1.0
    )

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG|INFO|WARNING|ERROR|CRITICAL"
    )
    log_format: str = Field(
        default="json",
        description="Log format: json|text"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return _one_of("log_level", v.upper(), LOG_LEVELS)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        return _one_of("environment", v.lower(), ENVIRONMENTS)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        return _one_of("log_format", v.lower(), LOG_FORMATS)

    @field_validator("diagnostics_prefix", "metrics_endpoint")
    @classmethod
    def validate_path(cls, v: str, info: ValidationInfo) -> str:
        """Mount paths are absolute; a trailing slash is dropped."""
        if not v.startswith("/"):
            raise ValueError(f"path must start with '/', got: {v}")
        path = v.rstrip("/")
        if path:
            return path
        # Router prefixes cannot be the root; a single route can
        if info.field_name == "diagnostics_prefix":
            raise ValueError("diagnostics_prefix must name a path below '/'")
        return "/"

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"

    # =========================================================================
    # Model Config
    # =========================================================================

    model_config = SettingsConfigDict(
        env_prefix="LOAD_API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and shared
    across the application.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from api.src.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.port)
        9876
    """
    return Settings()


def clear_settings_cache():
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
