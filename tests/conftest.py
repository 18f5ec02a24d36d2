"""Shared fixtures for routegate tests."""

from typing import Any, Dict, Optional
from unittest.mock import AsyncMock

import pytest

from routegate.app.core.endpoints import (
    FALLBACK_CLASSES,
    EndpointClass,
    EndpointConfig,
    freeze_configs,
)
from routegate.app.models import (
    DirectionsRequest,
    GeocodingRequest,
    IsochronesRequest,
    MatrixRequest,
    PointsOfInterestRequest,
)
from routegate.app.services.adapters import EndpointAdapter


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


_REQUEST_TYPES = {
    EndpointClass.DIRECTIONS: DirectionsRequest,
    EndpointClass.POINTS_OF_INTEREST: PointsOfInterestRequest,
    EndpointClass.MATRIX: MatrixRequest,
    EndpointClass.ISOCHRONES: IsochronesRequest,
    EndpointClass.GEOCODING: GeocodingRequest,
}


class StubAdapter(EndpointAdapter):
    """Adapter whose provider calls are AsyncMocks."""

    def __init__(self, endpoint_class: EndpointClass, with_fallback: bool):
        self.endpoint_class = endpoint_class
        self.request_type = _REQUEST_TYPES[endpoint_class]
        self.primary = None
        self.primary_call = AsyncMock(return_value=f"{endpoint_class.value}-primary")
        self.fallback_call = AsyncMock(return_value=f"{endpoint_class.value}-fallback")
        self._with_fallback = with_fallback

    @property
    def primary_name(self) -> str:
        return "stub-primary"

    @property
    def fallback_name(self) -> Optional[str]:
        return "stub-fallback" if self._with_fallback else None

    async def call_primary(self, request: Any, timeout: float) -> Any:
        return await self.primary_call(request, timeout)

    async def call_fallback(self, request: Any, timeout: float) -> Any:
        return await self.fallback_call(request, timeout)


def make_configs(**overrides: Dict[str, Any]):
    """Endpoint table with small limits; ``overrides`` is keyed by class value."""
    configs = {}
    for endpoint_class in EndpointClass:
        values = {
            "daily_limit": 100,
            "per_minute_limit": 50,
            "cache_ttl": 300.0,
            "cache_capacity": 10,
            "timeout": 5.0,
            "has_fallback_provider": endpoint_class in FALLBACK_CLASSES,
        }
        values.update(overrides.get(endpoint_class.value, {}))
        configs[endpoint_class] = EndpointConfig(endpoint_class=endpoint_class, **values)
    return freeze_configs(configs)


def make_stub_adapters(configs) -> Dict[EndpointClass, StubAdapter]:
    return {
        endpoint_class: StubAdapter(endpoint_class, config.has_fallback_provider)
        for endpoint_class, config in configs.items()
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def configs():
    return make_configs()


@pytest.fixture
def directions_request() -> DirectionsRequest:
    return DirectionsRequest(coordinates=[(8.681495, 49.41461), (8.687872, 49.420318)])


@pytest.fixture
def geocoding_request() -> GeocodingRequest:
    return GeocodingRequest(text="Heidelberg Hauptbahnhof")
