"""Overpass API fallback for points of interest.

Category ids from the primary provider are translated to OSM tags; the
mapping only covers the common categories, and an unmapped request
searches for restaurants.
"""

from typing import Any, Dict, List, Optional, Tuple

import httpx

from routegate.app.core.geo import haversine_m
from routegate.app.models import PointsOfInterestRequest, SimplePOI
from routegate.app.providers.base import BaseProvider
from routegate.app.providers.retry import RetryPolicy

_PARSE_ERRORS = (KeyError, IndexError, TypeError, ValueError, AttributeError)

CATEGORY_TAGS: Dict[int, List[Tuple[str, str]]] = {
    560: [("amenity", "restaurant"), ("amenity", "fast_food")],
    470: [("amenity", "fuel")],
    360: [("amenity", "hospital"), ("amenity", "clinic")],
    600: [("shop", "supermarket"), ("shop", "mall")],
    510: [("amenity", "atm"), ("amenity", "bank")],
    580: [("tourism", "hotel"), ("tourism", "hostel")],
    590: [("tourism", "attraction"), ("tourism", "museum")],
    480: [("amenity", "parking")],
}
DEFAULT_TAGS = [("amenity", "restaurant")]

_TAG_CATEGORY_IDS = {tag: cid for cid, tags in CATEGORY_TAGS.items() for tag in tags}

_CATEGORY_NAMES = {
    ("amenity", "restaurant"): "Restaurant",
    ("amenity", "fast_food"): "Fast Food",
    ("amenity", "fuel"): "Gas Station",
    ("amenity", "hospital"): "Hospital",
    ("amenity", "clinic"): "Medical",
    ("amenity", "atm"): "ATM",
    ("amenity", "bank"): "Bank",
    ("amenity", "parking"): "Parking",
    ("shop", "supermarket"): "Supermarket",
    ("shop", "mall"): "Shopping",
    ("tourism", "hotel"): "Hotel",
    ("tourism", "hostel"): "Hostel",
    ("tourism", "attraction"): "Attraction",
    ("tourism", "museum"): "Museum",
}


def tags_for_categories(categories: List[int]) -> List[Tuple[str, str]]:
    tags: List[Tuple[str, str]] = []
    for category_id in categories:
        for tag in CATEGORY_TAGS.get(category_id, []):
            if tag not in tags:
                tags.append(tag)
    return tags or list(DEFAULT_TAGS)


def build_query(request: PointsOfInterestRequest, timeout: float) -> str:
    """Overpass QL selecting nodes and ways near the request centre."""
    lng, lat = request.center
    around = f"(around:{int(request.radius)},{lat},{lng})"
    clauses = "".join(
        f'node["{key}"="{value}"]{around};way["{key}"="{value}"]{around};'
        for key, value in tags_for_categories(request.categories)
    )
    return f"[out:json][timeout:{max(1, int(timeout))}];({clauses});out center {request.limit};"


class OverpassProvider(BaseProvider):
    """Overpass interpreter queries over OpenStreetMap data."""

    name = "overpass"

    def __init__(
        self,
        base_url: str,
        user_agent: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.user_agent = user_agent
        super().__init__(base_url, http_client, timeout, retry_policy)

    def _build_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "User-Agent": self.user_agent}

    async def pois(
        self, request: PointsOfInterestRequest, timeout: Optional[float] = None
    ) -> List[SimplePOI]:
        query = build_query(request, timeout or self.timeout)
        data = await self._request(
            "POST", "/interpreter", data={"data": query}, timeout=timeout
        )
        try:
            pois = [
                self._to_poi(element, i, request.center)
                for i, element in enumerate(data["elements"])
            ]
        except _PARSE_ERRORS as e:
            raise self._malformed("elements") from e
        return pois[: request.limit]

    @staticmethod
    def _to_poi(element: Dict[str, Any], index: int, center) -> SimplePOI:
        center_point = element.get("center") or {}
        lat = float(element.get("lat", center_point.get("lat", 0.0)))
        lng = float(element.get("lon", center_point.get("lon", 0.0)))
        tags = element.get("tags") or {}
        category, category_id = _category_from_tags(tags)
        return SimplePOI(
            id=f"overpass_{element['id']}_{index}",
            name=tags.get("name") or tags.get("brand") or "Unnamed Place",
            category=category,
            category_id=category_id,
            lat=lat,
            lng=lng,
            distance=round(haversine_m(center, (lng, lat))),
            address=_format_address(tags),
            phone=tags.get("phone"),
            website=tags.get("website"),
            opening_hours=tags.get("opening_hours"),
            wheelchair=tags.get("wheelchair") == "yes",
            fee=tags.get("fee") == "yes",
        )


def _category_from_tags(tags: Dict[str, Any]) -> Tuple[str, int]:
    for key in ("amenity", "shop", "tourism"):
        value = tags.get(key)
        if value:
            tag = (key, value)
            return _CATEGORY_NAMES.get(tag, value), _TAG_CATEGORY_IDS.get(tag, 0)
    return "Unknown", 0


def _format_address(tags: Dict[str, Any]) -> Optional[str]:
    street = " ".join(
        part for part in (tags.get("addr:housenumber"), tags.get("addr:street")) if part
    )
    parts = [p for p in (street, tags.get("addr:city")) if p]
    return ", ".join(parts) or None
