"""Explicit construction of the gateway object graph.

Everything stateful (ledger, cache, gateway, optimizer) is built here once
per process and handed to whoever needs it. Tests build their own
containers with in-memory storage and fake clocks.
"""

import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

import httpx

from routegate.app.core.cache import CacheBackend, create_cache_backend
from routegate.app.core.config import Settings
from routegate.app.core.endpoints import EndpointClass, EndpointConfig
from routegate.app.providers.factory import ProviderFactory, ProviderType
from routegate.app.services.adapters import EndpointAdapter, build_adapters
from routegate.app.services.provider_gateway import ProviderGateway
from routegate.app.services.quota_ledger import QuotaLedger
from routegate.app.services.response_cache import ResponseCache
from routegate.app.services.waypoint_optimizer import WaypointOptimizer


@dataclass
class Container:
    configs: Mapping[EndpointClass, EndpointConfig]
    storage: CacheBackend
    ledger: QuotaLedger
    cache: ResponseCache
    gateway: ProviderGateway
    optimizer: WaypointOptimizer

    async def start(self) -> None:
        """Load the persisted usage log."""
        await self.ledger.load()

    async def close(self) -> None:
        await self.storage.close()


def build_container(
    config: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    storage: Optional[CacheBackend] = None,
    adapters: Optional[Mapping[EndpointClass, EndpointAdapter]] = None,
    clock: Callable[[], float] = time.time,
) -> Container:
    """Build a container from settings.

    Args:
        config: Application settings
        http_client: Shared HTTP client for the providers
        storage: Usage-log backend; defaults to the one named in settings
        adapters: Override the provider-backed adapters (tests)
        clock: Time source for the ledger and cache

    Returns:
        A fully wired Container
    """
    configs = config.endpoint_configs()
    if storage is None:
        storage = create_cache_backend(
            config.quota_storage_backend,
            redis_url=config.redis_url,
            database_url=config.quota_database_url,
        )

    if adapters is None:
        factory = ProviderFactory(config, http_client=http_client)
        adapters = build_adapters(
            primary=factory.create_primary_provider(),
            geocoding_fallback=factory.create_provider(ProviderType.NOMINATIM),
            poi_fallback=factory.create_provider(ProviderType.OVERPASS),
        )

    ledger = QuotaLedger(
        configs,
        storage=storage,
        storage_prefix=config.quota_storage_prefix,
        daily_window=config.quota_daily_window,
        clock=clock,
    )
    cache = ResponseCache.from_configs(configs, clock=clock)
    gateway = ProviderGateway(ledger, cache, adapters, configs)
    return Container(
        configs=configs,
        storage=storage,
        ledger=ledger,
        cache=cache,
        gateway=gateway,
        optimizer=WaypointOptimizer(gateway),
    )
