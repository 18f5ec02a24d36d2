"""Per-endpoint-class request adapters.

An adapter binds one endpoint class to the provider calls that serve it:
the primary call and, for classes that have one, the fallback call. The
gateway owns caching, quota and fallback decisions; adapters only know
how to send a request and what result type comes back.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel

from routegate.app.core.endpoints import EndpointClass
from routegate.app.exceptions import InvalidRequestError, ProviderFailureError
from routegate.app.models import (
    DirectionsRequest,
    GeocodingRequest,
    IsochronesRequest,
    MatrixRequest,
    PointsOfInterestRequest,
)
from routegate.app.providers.nominatim import NominatimProvider
from routegate.app.providers.openrouteservice import OpenRouteServiceProvider
from routegate.app.providers.overpass import OverpassProvider


class EndpointAdapter(ABC):
    """Strategy for one endpoint class."""

    endpoint_class: EndpointClass
    request_type: Type[BaseModel]

    def __init__(self, primary: OpenRouteServiceProvider) -> None:
        self.primary = primary

    @property
    def primary_name(self) -> str:
        return self.primary.name

    @property
    def fallback_name(self) -> Optional[str]:
        return None

    @property
    def has_fallback(self) -> bool:
        return self.fallback_name is not None

    def coerce(self, request: Any) -> BaseModel:
        """Validate a mapping or model into this adapter's request type."""
        if isinstance(request, self.request_type):
            return request
        if isinstance(request, BaseModel):
            raise InvalidRequestError(
                f"{self.endpoint_class.value} expects {self.request_type.__name__}, "
                f"got {type(request).__name__}"
            )
        try:
            return self.request_type.model_validate(request)
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

    @abstractmethod
    async def call_primary(self, request: Any, timeout: float) -> Any:
        """Send ``request`` to the primary provider and return the normalized result."""

    async def call_fallback(self, request: Any, timeout: float) -> Any:
        """Best-effort translation of ``request`` to the fallback provider.

        Classes without a fallback fail like an unreachable provider.
        """
        raise ProviderFailureError(
            f"{self.endpoint_class.value} has no fallback provider",
            endpoint_class=self.endpoint_class.value,
        )


class DirectionsAdapter(EndpointAdapter):
    endpoint_class = EndpointClass.DIRECTIONS
    request_type = DirectionsRequest

    async def call_primary(self, request: DirectionsRequest, timeout: float):
        return await self.primary.directions(request, timeout=timeout)


class MatrixAdapter(EndpointAdapter):
    endpoint_class = EndpointClass.MATRIX
    request_type = MatrixRequest

    async def call_primary(self, request: MatrixRequest, timeout: float):
        return await self.primary.matrix(request, timeout=timeout)


class IsochronesAdapter(EndpointAdapter):
    endpoint_class = EndpointClass.ISOCHRONES
    request_type = IsochronesRequest

    async def call_primary(self, request: IsochronesRequest, timeout: float):
        return await self.primary.isochrones(request, timeout=timeout)


class PointsOfInterestAdapter(EndpointAdapter):
    endpoint_class = EndpointClass.POINTS_OF_INTEREST
    request_type = PointsOfInterestRequest

    def __init__(self, primary: OpenRouteServiceProvider, fallback: OverpassProvider) -> None:
        super().__init__(primary)
        self.fallback = fallback

    @property
    def fallback_name(self) -> Optional[str]:
        return self.fallback.name

    async def call_primary(self, request: PointsOfInterestRequest, timeout: float):
        return await self.primary.pois(request, timeout=timeout)

    async def call_fallback(self, request: PointsOfInterestRequest, timeout: float):
        return await self.fallback.pois(request, timeout=timeout)


class GeocodingAdapter(EndpointAdapter):
    endpoint_class = EndpointClass.GEOCODING
    request_type = GeocodingRequest

    def __init__(self, primary: OpenRouteServiceProvider, fallback: NominatimProvider) -> None:
        super().__init__(primary)
        self.fallback = fallback

    @property
    def fallback_name(self) -> Optional[str]:
        return self.fallback.name

    async def call_primary(self, request: GeocodingRequest, timeout: float):
        return await self.primary.geocode(request, timeout=timeout)

    async def call_fallback(self, request: GeocodingRequest, timeout: float):
        # Nominatim has no autocomplete; a plain search stands in for it.
        return await self.fallback.geocode(request, timeout=timeout)


def build_adapters(
    primary: OpenRouteServiceProvider,
    geocoding_fallback: NominatimProvider,
    poi_fallback: OverpassProvider,
) -> Dict[EndpointClass, EndpointAdapter]:
    """One adapter per endpoint class."""
    adapters = [
        DirectionsAdapter(primary),
        PointsOfInterestAdapter(primary, poi_fallback),
        MatrixAdapter(primary),
        IsochronesAdapter(primary),
        GeocodingAdapter(primary, geocoding_fallback),
    ]
    return {adapter.endpoint_class: adapter for adapter in adapters}
