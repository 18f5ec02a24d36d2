from typing import Literal, Mapping

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from routegate.app.core.endpoints import (
    FALLBACK_CLASSES,
    EndpointClass,
    EndpointConfig,
    freeze_configs,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Primary provider (OpenRouteService)
    ors_api_key: str = ""
    ors_base_url: str = "https://api.openrouteservice.org"

    # Fallback providers
    nominatim_base_url: str = "https://nominatim.openstreetmap.org"
    overpass_base_url: str = "https://overpass-api.de/api"
    fallback_user_agent: str = "routegate/0.1"

    # HTTP Client connection pool settings
    httpx_connect_timeout: float = 5.0  # Time to establish connection
    httpx_read_timeout: float = 15.0  # Time to read response data
    httpx_write_timeout: float = 5.0  # Time to send request data
    httpx_pool_timeout: float = 5.0  # Time to acquire connection from pool
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 50
    httpx_max_keepalive_connections: int = 10

    # Retry of transient primary failures (0 disables)
    provider_max_retries: int = 0
    provider_retry_base_delay: float = 0.5

    # Directions
    directions_daily_limit: int = 2000
    directions_per_minute_limit: int = 40
    directions_cache_ttl: float = 5 * 60
    directions_cache_capacity: int = 50
    directions_timeout: float = 15.0

    # Points of interest
    pois_daily_limit: int = 500
    pois_per_minute_limit: int = 60
    pois_cache_ttl: float = 60 * 60
    pois_cache_capacity: int = 100
    pois_timeout: float = 10.0

    # Matrix
    matrix_daily_limit: int = 500
    matrix_per_minute_limit: int = 40
    matrix_cache_ttl: float = 10 * 60
    matrix_cache_capacity: int = 25
    matrix_timeout: float = 15.0

    # Isochrones
    isochrones_daily_limit: int = 500
    isochrones_per_minute_limit: int = 20
    isochrones_cache_ttl: float = 30 * 60
    isochrones_cache_capacity: int = 20
    isochrones_timeout: float = 15.0

    # Geocoding
    geocoding_daily_limit: int = 1000
    geocoding_per_minute_limit: int = 100
    geocoding_cache_ttl: float = 24 * 60 * 60
    geocoding_cache_capacity: int = 100
    geocoding_timeout: float = 5.0

    # Quota window: "rolling" counts the trailing 24h, "calendar" counts
    # since local midnight.
    quota_daily_window: Literal["rolling", "calendar"] = "rolling"

    # Usage log storage
    quota_storage_backend: Literal["sql", "redis", "memory"] = "sql"
    quota_database_url: str = "sqlite+aiosqlite:///routegate_usage.db"
    redis_url: str = "redis://localhost:6379/0"
    quota_storage_prefix: str = "routegate:v1"

    @field_validator(
        "directions_daily_limit",
        "directions_per_minute_limit",
        "pois_daily_limit",
        "pois_per_minute_limit",
        "matrix_daily_limit",
        "matrix_per_minute_limit",
        "isochrones_daily_limit",
        "isochrones_per_minute_limit",
        "geocoding_daily_limit",
        "geocoding_per_minute_limit",
    )
    @classmethod
    def validate_limit_non_negative(cls, v: int) -> int:
        """Validate quota limits are non-negative."""
        if v < 0:
            raise ValueError("Quota limits must be >= 0")
        return v

    @field_validator(
        "directions_cache_capacity",
        "pois_cache_capacity",
        "matrix_cache_capacity",
        "isochrones_cache_capacity",
        "geocoding_cache_capacity",
    )
    @classmethod
    def validate_capacity_positive(cls, v: int) -> int:
        """Validate cache capacities hold at least one entry."""
        if v < 1:
            raise ValueError("Cache capacity must be at least 1")
        return v

    @field_validator(
        "directions_cache_ttl",
        "pois_cache_ttl",
        "matrix_cache_ttl",
        "isochrones_cache_ttl",
        "geocoding_cache_ttl",
        "directions_timeout",
        "pois_timeout",
        "matrix_timeout",
        "isochrones_timeout",
        "geocoding_timeout",
        "httpx_connect_timeout",
        "httpx_read_timeout",
    )
    @classmethod
    def validate_duration_positive(cls, v: float) -> float:
        """Validate TTLs and timeouts are positive."""
        if v <= 0:
            raise ValueError("TTL and timeout values must be positive")
        return v

    @field_validator("provider_max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("provider_max_retries must be >= 0")
        return v

    def endpoint_configs(self) -> Mapping[EndpointClass, EndpointConfig]:
        """Build the immutable per-class configuration table.

        Returns:
            Read-only mapping of EndpointClass to EndpointConfig
        """
        configs = {}
        for endpoint_class in EndpointClass:
            prefix = endpoint_class.value
            configs[endpoint_class] = EndpointConfig(
                endpoint_class=endpoint_class,
                daily_limit=getattr(self, f"{prefix}_daily_limit"),
                per_minute_limit=getattr(self, f"{prefix}_per_minute_limit"),
                cache_ttl=getattr(self, f"{prefix}_cache_ttl"),
                cache_capacity=getattr(self, f"{prefix}_cache_capacity"),
                timeout=getattr(self, f"{prefix}_timeout"),
                has_fallback_provider=endpoint_class in FALLBACK_CLASSES,
            )
        return freeze_configs(configs)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
