"""Tests for ProviderFactory and container wiring."""

from unittest.mock import patch

import httpx
import pytest

from routegate.app.core.cache import InMemoryCache, RedisCache, SQLCache
from routegate.app.core.config import Settings
from routegate.app.core.endpoints import EndpointClass
from routegate.app.exceptions import ProviderFailureError
from routegate.app.providers.factory import ProviderFactory, ProviderType
from routegate.app.providers.nominatim import NominatimProvider
from routegate.app.providers.openrouteservice import OpenRouteServiceProvider
from routegate.app.providers.overpass import OverpassProvider
from routegate.app.services.adapters import GeocodingAdapter, MatrixAdapter
from routegate.app.services.container import build_container
from routegate.app.services.quota_ledger import Outcome


@pytest.fixture
def config():
    return Settings(
        _env_file=None,
        ors_api_key="test-key",
        provider_max_retries=2,
        fallback_user_agent="routegate-tests/1.0",
    )


class TestProviderType:
    def test_values(self):
        assert ProviderType.OPENROUTESERVICE.value == "openrouteservice"
        assert ProviderType.NOMINATIM.value == "nominatim"
        assert ProviderType.OVERPASS.value == "overpass"


class TestProviderFactory:
    def test_primary(self, config):
        client = httpx.AsyncClient()
        provider = ProviderFactory(config, http_client=client).create_primary_provider()

        assert isinstance(provider, OpenRouteServiceProvider)
        assert provider.http_client is client
        assert provider.headers["Authorization"] == "test-key"
        assert provider.retry_policy.max_retries == 2

    def test_fallbacks_do_not_retry(self, config):
        factory = ProviderFactory(config)
        geocoder = factory.create_provider(ProviderType.NOMINATIM)
        overpass = factory.create_provider(ProviderType.OVERPASS)

        assert isinstance(geocoder, NominatimProvider)
        assert isinstance(overpass, OverpassProvider)
        assert geocoder.headers["User-Agent"] == "routegate-tests/1.0"
        assert geocoder.retry_policy.max_retries == 0
        assert geocoder.timeout == config.geocoding_timeout

    def test_unsupported_type(self, config):
        with pytest.raises(ValueError):
            ProviderFactory(config).create_provider("mapbox")

    def test_missing_key_still_builds(self):
        with patch("routegate.app.providers.factory.logger") as mock_logger:
            provider = ProviderFactory(Settings(_env_file=None)).create_primary_provider()
        assert provider.api_key == ""
        mock_logger.warning.assert_called_once()


class TestBuildContainer:
    def test_wires_every_class(self, config):
        container = build_container(config, http_client=httpx.AsyncClient())
        adapters = container.gateway._adapters

        assert set(adapters) == set(EndpointClass)
        assert isinstance(adapters[EndpointClass.MATRIX], MatrixAdapter)
        geocoding = adapters[EndpointClass.GEOCODING]
        assert isinstance(geocoding, GeocodingAdapter)
        assert geocoding.fallback_name == "nominatim"
        assert adapters[EndpointClass.POINTS_OF_INTEREST].fallback_name == "overpass"
        assert adapters[EndpointClass.DIRECTIONS].has_fallback is False

    def test_storage_from_settings(self):
        default = build_container(Settings(_env_file=None))
        memory = build_container(Settings(_env_file=None, quota_storage_backend="memory"))
        redis = build_container(Settings(_env_file=None, quota_storage_backend="redis"))
        assert isinstance(default.storage, SQLCache)
        assert isinstance(memory.storage, InMemoryCache)
        assert isinstance(redis.storage, RedisCache)

    @pytest.mark.asyncio
    async def test_start_loads_usage_log(self, config):
        storage = InMemoryCache()
        await storage.set(
            "routegate:v1:usage:matrix",
            b'[{"timestamp": 9999999999, "outcome": "real-success"}]',
            ttl=0,
        )
        container = build_container(config, storage=storage, clock=lambda: 10_000_000_000)

        await container.start()

        assert container.ledger.status(EndpointClass.MATRIX).daily_used == 1
        await container.close()

    @pytest.mark.asyncio
    async def test_budget_survives_restart_with_default_storage(self, tmp_path):
        config = Settings(
            _env_file=None,
            matrix_daily_limit=2,
            quota_database_url=f"sqlite+aiosqlite:///{tmp_path / 'usage.db'}",
        )
        first = build_container(config)
        await first.start()
        await first.ledger.record(EndpointClass.MATRIX, Outcome.REAL_SUCCESS)
        await first.ledger.record(EndpointClass.MATRIX, Outcome.REAL_SUCCESS)
        assert first.ledger.can_proceed(EndpointClass.MATRIX).allowed is False
        await first.close()

        second = build_container(config)
        await second.start()

        assert second.ledger.status(EndpointClass.MATRIX).daily_used == 2
        assert second.ledger.can_proceed(EndpointClass.MATRIX).allowed is False
        await second.close()


class TestAdapters:
    @pytest.mark.asyncio
    async def test_class_without_fallback_fails_as_provider_error(self, config):
        container = build_container(config, storage=InMemoryCache())
        adapter = container.gateway._adapters[EndpointClass.DIRECTIONS]

        with pytest.raises(ProviderFailureError) as exc_info:
            await adapter.call_fallback(
                {"coordinates": [[8.68, 49.41], [8.69, 49.42]]}, timeout=1.0
            )
        assert exc_info.value.endpoint_class == "directions"
