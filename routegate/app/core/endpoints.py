"""Endpoint classes and their static configuration.

An endpoint class is one logical family of provider operations sharing a
quota and a cache namespace. Configuration is built once at startup (see
``Settings.endpoint_configs``) and never mutated afterwards.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class EndpointClass(str, Enum):
    """Logical operation families exposed by the gateway."""

    DIRECTIONS = "directions"
    POINTS_OF_INTEREST = "pois"
    MATRIX = "matrix"
    ISOCHRONES = "isochrones"
    GEOCODING = "geocoding"


@dataclass(frozen=True)
class EndpointConfig:
    """Static quota and cache configuration for one endpoint class.

    Attributes:
        endpoint_class: The class this configuration belongs to
        daily_limit: Maximum real successful calls per day
        per_minute_limit: Maximum real successful calls per trailing minute
        cache_ttl: Freshness window for cached responses, in seconds
        cache_capacity: Maximum cached entries in this class's namespace
        timeout: Per-call network timeout in seconds
        has_fallback_provider: Whether a secondary provider may be used
    """

    endpoint_class: EndpointClass
    daily_limit: int
    per_minute_limit: int
    cache_ttl: float
    cache_capacity: int = 100
    timeout: float = 10.0
    has_fallback_provider: bool = False

    def __post_init__(self) -> None:
        if self.daily_limit < 0 or self.per_minute_limit < 0:
            raise ValueError("Quota limits must be non-negative")
        if self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")
        if self.cache_capacity < 1:
            raise ValueError("cache_capacity must be at least 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


# Classes the primary provider's quota table rations with a secondary source.
FALLBACK_CLASSES = frozenset(
    {EndpointClass.GEOCODING, EndpointClass.POINTS_OF_INTEREST}
)


def freeze_configs(
    configs: Mapping[EndpointClass, EndpointConfig],
) -> Mapping[EndpointClass, EndpointConfig]:
    """Return a read-only view over ``configs`` after checking consistency."""
    for endpoint_class, config in configs.items():
        if config.endpoint_class is not endpoint_class:
            raise ValueError(
                f"Config for {endpoint_class.value} is labelled "
                f"{config.endpoint_class.value}"
            )
    return MappingProxyType(dict(configs))
