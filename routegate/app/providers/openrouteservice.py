"""OpenRouteService provider implementation.

The primary backend for every endpoint class. Each public method sends one
request and converts the payload into the normalized result models; a
payload missing the fields we need is a provider failure.
"""

from typing import Any, Dict, List, Optional

import httpx

from routegate.app.core.geo import (
    bbox_around,
    format_area,
    format_distance,
    format_duration,
    geometry_bounds,
    haversine_m,
)
from routegate.app.models import (
    DirectionsRequest,
    DistanceMatrix,
    GeocodingRequest,
    IsochronesRequest,
    MatrixRequest,
    PointsOfInterestRequest,
    ReachabilityArea,
    SimpleLocation,
    SimplePOI,
    SimpleRoute,
)
from routegate.app.providers.base import BaseProvider
from routegate.app.providers.retry import RetryPolicy

_PARSE_ERRORS = (KeyError, IndexError, TypeError, ValueError)


class OpenRouteServiceProvider(BaseProvider):
    """OpenRouteService v2 JSON API."""

    name = "openrouteservice"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.api_key = api_key
        super().__init__(base_url, http_client, timeout, retry_policy)

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": self.api_key,
            "Accept": "application/json, application/geo+json",
            "Content-Type": "application/json",
        }

    # -- directions ---------------------------------------------------------

    async def directions(
        self, request: DirectionsRequest, timeout: Optional[float] = None
    ) -> List[SimpleRoute]:
        body: Dict[str, Any] = {
            "coordinates": [list(p) for p in request.coordinates],
            "preference": request.preference,
            "instructions": request.instructions,
            "units": request.units,
        }
        avoid = request.avoid_features()
        if avoid:
            body["options"] = {"avoid_features": avoid}
        if request.alternative_routes is not None:
            alt = request.alternative_routes
            body["alternative_routes"] = {
                "target_count": alt.target_count,
                "weight_factor": alt.weight_factor,
                "share_factor": alt.share_factor,
            }

        data = await self._request(
            "POST",
            f"/v2/directions/{request.profile.value}/geojson",
            json=body,
            timeout=timeout,
        )
        try:
            features = data["features"]
            if not features:
                raise self._malformed("routes")
            return [self._to_route(f, i) for i, f in enumerate(features)]
        except _PARSE_ERRORS as e:
            raise self._malformed("route fields") from e

    @staticmethod
    def _to_route(feature: Dict[str, Any], index: int) -> SimpleRoute:
        props = feature["properties"]
        summary = props.get("summary", {})
        distance = float(summary.get("distance", 0.0))
        duration = float(summary.get("duration", 0.0))
        instructions = [
            step["instruction"]
            for segment in props.get("segments", [])
            for step in segment.get("steps", [])
            if step.get("instruction")
        ]
        return SimpleRoute(
            id=f"route_{index}",
            distance_meters=distance,
            duration_seconds=duration,
            distance_formatted=format_distance(distance),
            duration_formatted=format_duration(duration),
            geometry=feature["geometry"]["coordinates"],
            instructions=instructions,
            bbox=feature.get("bbox"),
        )

    # -- points of interest -------------------------------------------------

    async def pois(
        self, request: PointsOfInterestRequest, timeout: Optional[float] = None
    ) -> List[SimplePOI]:
        body: Dict[str, Any] = {
            "request": "pois",
            "geometry": {
                "bbox": bbox_around(request.center, request.radius),
                "geojson": {"type": "Point", "coordinates": list(request.center)},
                "buffer": min(int(request.radius), 2000),
            },
            "limit": request.limit,
        }
        filters = request.filters()
        if filters:
            body["filters"] = filters

        data = await self._request("POST", "/pois", json=body, timeout=timeout)
        try:
            return [
                self._to_poi(f, i, request.center)
                for i, f in enumerate(data["features"])
            ]
        except _PARSE_ERRORS as e:
            raise self._malformed("POI fields") from e

    @staticmethod
    def _to_poi(feature: Dict[str, Any], index: int, center) -> SimplePOI:
        props = feature["properties"]
        lng, lat = feature["geometry"]["coordinates"][:2]
        tags = props.get("osm_tags") or {}
        category_ids = props.get("category_ids") or {}
        # category_ids is keyed by id: {"560": {"category_name": ..., ...}}
        if isinstance(category_ids, dict):
            first_id, first = next(iter(category_ids.items()), ("0", {}))
            category_id = int(first_id)
            category = first.get("category_name", "Unknown")
        else:
            category_id = int(category_ids[0]) if category_ids else 0
            category = "Unknown"
        return SimplePOI(
            id=f"ors_{props.get('osm_id', index)}_{index}",
            name=tags.get("name") or "Unnamed Place",
            category=category,
            category_id=category_id,
            lat=lat,
            lng=lng,
            distance=round(haversine_m(center, (lng, lat))),
            address=_format_ors_address(tags),
            phone=tags.get("phone"),
            website=tags.get("website"),
            opening_hours=tags.get("opening_hours"),
            wheelchair=tags.get("wheelchair") == "yes",
            fee=tags.get("fee") == "yes",
        )

    # -- matrix -------------------------------------------------------------

    async def matrix(
        self, request: MatrixRequest, timeout: Optional[float] = None
    ) -> DistanceMatrix:
        n_sources = len(request.sources)
        locations = [list(p) for p in request.sources] + [
            list(p) for p in request.destinations
        ]
        body = {
            "locations": locations,
            "sources": list(range(n_sources)),
            "destinations": list(range(n_sources, len(locations))),
            "metrics": list(request.metrics),
            "units": request.units,
        }
        data = await self._request(
            "POST",
            f"/v2/matrix/{request.profile.value}",
            json=body,
            timeout=timeout,
        )
        try:
            durations = data.get("durations") or []
            distances = data.get("distances") or []
            if "duration" in request.metrics and not durations:
                raise self._malformed("durations")
            if "distance" in request.metrics and not distances:
                raise self._malformed("distances")
            for table in (durations, distances):
                if table and (
                    len(table) != n_sources
                    or any(len(row) != len(request.destinations) for row in table)
                ):
                    raise self._malformed("a table of the requested shape")
            return DistanceMatrix(
                sources=request.sources,
                destinations=request.destinations,
                durations=durations,
                distances=distances,
            )
        except _PARSE_ERRORS as e:
            raise self._malformed("matrix tables") from e

    # -- isochrones ---------------------------------------------------------

    async def isochrones(
        self, request: IsochronesRequest, timeout: Optional[float] = None
    ) -> List[ReachabilityArea]:
        body: Dict[str, Any] = {
            "locations": [list(p) for p in request.locations],
            "range": list(request.ranges),
            "range_type": request.range_type,
            "attributes": list(request.attributes),
            "area_units": request.area_units,
        }
        if request.interval is not None:
            body["interval"] = request.interval

        data = await self._request(
            "POST",
            f"/v2/isochrones/{request.profile.value}",
            json=body,
            timeout=timeout,
        )
        try:
            features = data["features"]
            if not features:
                raise self._malformed("isochrone features")
            return [self._to_area(f, i, request) for i, f in enumerate(features)]
        except _PARSE_ERRORS as e:
            raise self._malformed("isochrone fields") from e

    @staticmethod
    def _to_area(
        feature: Dict[str, Any], index: int, request: IsochronesRequest
    ) -> ReachabilityArea:
        props = feature["properties"]
        value = float(props["value"])
        center = props.get("center") or request.locations[
            min(props.get("group_index", 0), len(request.locations) - 1)
        ]
        area = props.get("area") or 0.0
        sq_km = _to_sq_km(float(area), request.area_units)
        return ReachabilityArea(
            id=f"isochrone_{props.get('group_index', 0)}_{index}",
            center=(center[0], center[1]),
            profile=request.profile,
            range_type=request.range_type,
            value=value,
            minutes=value / 60 if request.range_type == "time" else None,
            area_sq_km=sq_km,
            area_sq_m=sq_km * 1_000_000,
            area_formatted=format_area(sq_km),
            geometry=feature["geometry"],
            bounds=geometry_bounds(feature["geometry"]["coordinates"]),
            population=props.get("total_pop"),
            reachability_score=props.get("reachfactor"),
        )

    # -- geocoding ----------------------------------------------------------

    async def geocode(
        self, request: GeocodingRequest, timeout: Optional[float] = None
    ) -> List[SimpleLocation]:
        params: Dict[str, Any] = {"size": request.size}
        if request.mode == "reverse":
            params["point.lon"], params["point.lat"] = request.point
        else:
            params["text"] = request.text
            if request.focus is not None:
                params["focus.point.lon"], params["focus.point.lat"] = request.focus
        if request.countries:
            params["boundary.country"] = ",".join(request.countries)
        if request.layers:
            params["layers"] = ",".join(request.layers)

        data = await self._request(
            "GET", f"/geocode/{request.mode}", params=params, timeout=timeout
        )
        try:
            return [self._to_location(f, i) for i, f in enumerate(data["features"])]
        except _PARSE_ERRORS as e:
            raise self._malformed("geocoding fields") from e

    @staticmethod
    def _to_location(feature: Dict[str, Any], index: int) -> SimpleLocation:
        props = feature["properties"]
        lng, lat = feature["geometry"]["coordinates"][:2]
        label = props.get("label") or props.get("name") or ""
        distance = props.get("distance")
        return SimpleLocation(
            id=props.get("gid") or f"ors_{index}",
            name=props.get("name") or label,
            address=label,
            lat=lat,
            lng=lng,
            confidence=float(props.get("confidence", 0.0)),
            category=props.get("layer"),
            country=props.get("country"),
            region=props.get("region"),
            # ORS reports distance from the focus/reverse point in km
            distance=float(distance) * 1000 if distance is not None else None,
        )


def _format_ors_address(tags: Dict[str, Any]) -> Optional[str]:
    street = " ".join(
        part for part in (tags.get("addr:street"), tags.get("addr:housenumber")) if part
    )
    parts = [p for p in (street, tags.get("addr:city")) if p]
    return ", ".join(parts) or None


def _to_sq_km(area: float, units: str) -> float:
    if units == "m":
        return area / 1_000_000
    if units == "mi":
        return area * 2.589988
    return area
