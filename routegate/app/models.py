"""Request and result models for routegate.

Requests are the normalized shapes feature code hands to the gateway; two
structurally equal requests always dump to the same JSON and therefore
share a cache key. Results are what the endpoint adapters produce from
provider payloads.

Coordinates are ``(lng, lat)`` pairs throughout.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LngLat = Tuple[float, float]


def _check_lnglat(point: LngLat) -> LngLat:
    lng, lat = point
    if not -180.0 <= lng <= 180.0:
        raise ValueError(f"longitude out of range: {lng}")
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"latitude out of range: {lat}")
    return point


class TransportProfile(str, Enum):
    """Routing profiles understood by the primary provider."""

    DRIVING_CAR = "driving-car"
    DRIVING_HGV = "driving-hgv"
    CYCLING_REGULAR = "cycling-regular"
    FOOT_WALKING = "foot-walking"
    WHEELCHAIR = "wheelchair"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class GatewayRequest(BaseModel):
    """Base for normalized requests. Immutable once built."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class AlternativeRoutes(GatewayRequest):
    target_count: int = Field(2, ge=1, le=3)
    weight_factor: float = Field(1.4, ge=1.0, le=2.0)
    share_factor: float = Field(0.6, gt=0.0, le=1.0)


class DirectionsRequest(GatewayRequest):
    profile: TransportProfile = TransportProfile.DRIVING_CAR
    coordinates: List[LngLat] = Field(..., min_length=2, max_length=50)
    preference: Literal["fastest", "shortest", "recommended"] = "recommended"
    avoid_tolls: bool = False
    avoid_highways: bool = False
    avoid_ferries: bool = False
    alternative_routes: Optional[AlternativeRoutes] = None
    instructions: bool = True
    units: Literal["m", "km", "mi"] = "m"

    @field_validator("coordinates")
    @classmethod
    def validate_coordinates(cls, v: List[LngLat]) -> List[LngLat]:
        return [_check_lnglat(p) for p in v]

    def avoid_features(self) -> List[str]:
        features = []
        if self.avoid_tolls:
            features.append("tollways")
        if self.avoid_highways:
            features.append("highways")
        if self.avoid_ferries:
            features.append("ferries")
        return features


class PointsOfInterestRequest(GatewayRequest):
    center: LngLat
    radius: float = Field(1000.0, gt=0, le=50000)
    categories: List[int] = Field(default_factory=list)
    limit: int = Field(20, ge=1, le=200)
    wheelchair: Optional[bool] = None
    smoking: Optional[bool] = None
    fee: Optional[bool] = None

    @field_validator("center")
    @classmethod
    def validate_center(cls, v: LngLat) -> LngLat:
        return _check_lnglat(v)

    def filters(self) -> Dict[str, Any]:
        filters: Dict[str, Any] = {}
        if self.categories:
            filters["category_ids"] = list(self.categories)
        for name in ("wheelchair", "smoking", "fee"):
            value = getattr(self, name)
            if value is not None:
                filters[name] = ["yes"] if value else ["no"]
        return filters


class MatrixRequest(GatewayRequest):
    profile: TransportProfile = TransportProfile.DRIVING_CAR
    sources: List[LngLat] = Field(..., min_length=1)
    destinations: List[LngLat] = Field(..., min_length=1)
    metrics: List[Literal["duration", "distance"]] = Field(
        default_factory=lambda: ["duration", "distance"], min_length=1
    )
    units: Literal["m", "km", "mi"] = "m"

    @field_validator("sources", "destinations")
    @classmethod
    def validate_points(cls, v: List[LngLat]) -> List[LngLat]:
        return [_check_lnglat(p) for p in v]


class IsochronesRequest(GatewayRequest):
    profile: TransportProfile = TransportProfile.DRIVING_CAR
    locations: List[LngLat] = Field(..., min_length=1, max_length=5)
    ranges: List[float] = Field(..., min_length=1, max_length=10)
    range_type: Literal["time", "distance"] = "time"
    interval: Optional[float] = Field(None, gt=0)
    attributes: List[Literal["area", "reachfactor", "total_pop"]] = Field(
        default_factory=lambda: ["area", "reachfactor"]
    )
    area_units: Literal["km", "m", "mi"] = "km"

    @field_validator("locations")
    @classmethod
    def validate_locations(cls, v: List[LngLat]) -> List[LngLat]:
        return [_check_lnglat(p) for p in v]

    @field_validator("ranges")
    @classmethod
    def validate_ranges(cls, v: List[float]) -> List[float]:
        if any(r <= 0 for r in v):
            raise ValueError("ranges must be positive")
        return v


class GeocodingRequest(GatewayRequest):
    mode: Literal["search", "autocomplete", "reverse"] = "search"
    text: Optional[str] = None
    point: Optional[LngLat] = None
    size: int = Field(10, ge=1, le=40)
    countries: List[str] = Field(default_factory=list)
    focus: Optional[LngLat] = None
    layers: List[str] = Field(default_factory=list)

    @field_validator("text")
    @classmethod
    def normalize_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def check_mode_inputs(self) -> "GeocodingRequest":
        if self.mode == "reverse":
            if self.point is None:
                raise ValueError("reverse geocoding requires point")
            _check_lnglat(self.point)
        elif self.text is None:
            raise ValueError(f"{self.mode} geocoding requires text")
        return self


class Waypoint(BaseModel):
    """A caller-supplied stop."""

    model_config = ConfigDict(frozen=True)

    coordinates: LngLat
    label: Optional[str] = None

    @field_validator("coordinates")
    @classmethod
    def validate_coordinates(cls, v: LngLat) -> LngLat:
        return _check_lnglat(v)


class OptimizeRequest(BaseModel):
    waypoints: List[Waypoint]
    profile: TransportProfile = TransportProfile.DRIVING_CAR


class CompareRequest(BaseModel):
    source: Waypoint
    destinations: List[Waypoint] = Field(..., min_length=1)
    profile: TransportProfile = TransportProfile.DRIVING_CAR


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class SimpleRoute(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    distance_meters: float
    duration_seconds: float
    distance_formatted: str
    duration_formatted: str
    geometry: Tuple[Tuple[float, ...], ...] = ()
    instructions: Tuple[str, ...] = ()
    bbox: Optional[Tuple[float, ...]] = None


class SimplePOI(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str
    category_id: int
    lat: float
    lng: float
    distance: Optional[float] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[str] = None
    wheelchair: bool = False
    fee: bool = False


class DistanceMatrix(BaseModel):
    """Durations (seconds) and distances (meters); None marks an unroutable pair."""

    model_config = ConfigDict(frozen=True)

    sources: Tuple[LngLat, ...]
    destinations: Tuple[LngLat, ...]
    durations: Tuple[Tuple[Optional[float], ...], ...] = ()
    distances: Tuple[Tuple[Optional[float], ...], ...] = ()

    def duration(self, i: int, j: int) -> Optional[float]:
        return self.durations[i][j] if self.durations else None

    def distance(self, i: int, j: int) -> Optional[float]:
        return self.distances[i][j] if self.distances else None


class ReachabilityArea(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    center: LngLat
    profile: TransportProfile
    range_type: Literal["time", "distance"]
    value: float
    minutes: Optional[float] = None
    area_sq_km: float = 0.0
    area_sq_m: float = 0.0
    area_formatted: str = ""
    geometry: Dict[str, Any]
    bounds: Dict[str, float]
    population: Optional[float] = None
    reachability_score: Optional[float] = None


class SimpleLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    address: str
    lat: float
    lng: float
    confidence: float
    category: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    distance: Optional[float] = None


class RankedDestination(BaseModel):
    index: int
    waypoint: Waypoint
    duration: float
    distance: Optional[float] = None
    duration_formatted: str
    distance_formatted: Optional[str] = None
    rank: int


class RouteComparison(BaseModel):
    source: Waypoint
    profile: TransportProfile
    destinations: List[RankedDestination]


class RouteSegment(BaseModel):
    from_index: int
    to_index: int
    duration: Optional[float] = None
    distance: Optional[float] = None


class OptimizedRoute(BaseModel):
    ordered_waypoints: List[Waypoint]
    order: List[int]
    segments: List[RouteSegment]
    total_duration: float
    total_distance: float
    duration_formatted: str
    distance_formatted: str
    baseline_duration: float
    baseline_distance: float
    duration_saved: float
    distance_saved: float
    percent_saved: int = Field(..., ge=0, le=100)
    matrix_provenance: str
    routable: bool = True
