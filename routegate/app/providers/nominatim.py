"""Nominatim geocoding fallback.

Only used when the primary geocoder is rationed or failing. Nominatim's
usage policy requires an identifying User-Agent on every request.
"""

from typing import Any, Dict, List, Optional

import httpx

from routegate.app.core.geo import haversine_m
from routegate.app.models import GeocodingRequest, SimpleLocation
from routegate.app.providers.base import BaseProvider
from routegate.app.providers.retry import RetryPolicy

_PARSE_ERRORS = (KeyError, IndexError, TypeError, ValueError, AttributeError)


class NominatimProvider(BaseProvider):
    """OpenStreetMap Nominatim search and reverse lookups."""

    name = "nominatim"

    def __init__(
        self,
        base_url: str,
        user_agent: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.user_agent = user_agent
        super().__init__(base_url, http_client, timeout, retry_policy)

    def _build_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "User-Agent": self.user_agent}

    async def geocode(
        self, request: GeocodingRequest, timeout: Optional[float] = None
    ) -> List[SimpleLocation]:
        """Search (autocomplete included) or reverse-geocode via Nominatim."""
        if request.mode == "reverse":
            lng, lat = request.point
            params: Dict[str, Any] = {
                "lat": lat,
                "lon": lng,
                "format": "json",
                "addressdetails": 1,
            }
            data = await self._request("GET", "/reverse", params=params, timeout=timeout)
            # reverse returns a single object, or {"error": ...} when nothing is there
            if isinstance(data, dict) and "error" in data:
                return []
            results = [data]
        else:
            params = {
                "q": request.text,
                "format": "json",
                "limit": request.size,
                "addressdetails": 1,
            }
            if request.countries:
                params["countrycodes"] = ",".join(c.lower() for c in request.countries)
            results = await self._request("GET", "/search", params=params, timeout=timeout)

        origin = request.point if request.mode == "reverse" else request.focus
        try:
            return [self._to_location(r, i, origin) for i, r in enumerate(results)]
        except _PARSE_ERRORS as e:
            raise self._malformed("geocoding fields") from e

    @staticmethod
    def _to_location(result: Dict[str, Any], index: int, origin) -> SimpleLocation:
        display_name = result["display_name"]
        lat = float(result["lat"])
        lng = float(result["lon"])
        address = result.get("address") or {}
        osm_id = result.get("osm_id")
        return SimpleLocation(
            id=f"osm_{osm_id}" if osm_id else f"nominatim_{index}",
            name=result.get("name") or display_name.split(",")[0],
            address=display_name,
            lat=lat,
            lng=lng,
            confidence=float(result.get("importance") or 0.5),
            category=result.get("type") or result.get("category"),
            country=address.get("country"),
            region=address.get("state") or address.get("region"),
            distance=haversine_m(origin, (lng, lat)) if origin is not None else None,
        )
