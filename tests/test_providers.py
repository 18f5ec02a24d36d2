"""Tests for the upstream provider clients against a mocked transport."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from routegate.app.exceptions import ProviderFailureError
from routegate.app.models import (
    DirectionsRequest,
    GeocodingRequest,
    IsochronesRequest,
    MatrixRequest,
    PointsOfInterestRequest,
)
from routegate.app.providers.nominatim import NominatimProvider
from routegate.app.providers.openrouteservice import OpenRouteServiceProvider
from routegate.app.providers.overpass import (
    DEFAULT_TAGS,
    OverpassProvider,
    build_query,
    tags_for_categories,
)
from routegate.app.providers.retry import RetryPolicy

HEIDELBERG = (8.681495, 49.41461)
BISMARCKPLATZ = (8.687872, 49.420318)


class Recorder:
    """MockTransport handler that answers every request with one response."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error(request)
        return self.response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


def client_for(recorder: Recorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(recorder))


def ors(recorder: Recorder, **kwargs) -> OpenRouteServiceProvider:
    return OpenRouteServiceProvider(
        base_url="https://ors.test/",
        api_key="ors-key",
        http_client=client_for(recorder),
        **kwargs,
    )


class TestOpenRouteServiceDirections:
    @pytest.mark.asyncio
    async def test_parses_routes(self):
        recorder = Recorder(
            httpx.Response(
                200,
                json={
                    "features": [
                        {
                            "bbox": [8.68, 49.41, 8.69, 49.42],
                            "geometry": {
                                "type": "LineString",
                                "coordinates": [list(HEIDELBERG), list(BISMARCKPLATZ)],
                            },
                            "properties": {
                                "summary": {"distance": 1234.5, "duration": 300.0},
                                "segments": [
                                    {
                                        "steps": [
                                            {"instruction": "Head north"},
                                            {"instruction": ""},
                                            {"instruction": "Arrive"},
                                        ]
                                    }
                                ],
                            },
                        }
                    ]
                },
            )
        )
        provider = ors(recorder)
        request = DirectionsRequest(
            coordinates=[HEIDELBERG, BISMARCKPLATZ], avoid_tolls=True
        )

        routes = await provider.directions(request)

        assert len(routes) == 1
        route = routes[0]
        assert route.id == "route_0"
        assert route.distance_meters == 1234.5
        assert route.distance_formatted == "1.2 km"
        assert route.duration_formatted == "5m"
        assert route.instructions == ("Head north", "Arrive")

        sent = recorder.last
        assert sent.method == "POST"
        assert sent.url.path == "/v2/directions/driving-car/geojson"
        assert sent.headers["Authorization"] == "ors-key"
        body = recorder.last_json()
        assert body["options"] == {"avoid_features": ["tollways"]}
        assert body["coordinates"] == [list(HEIDELBERG), list(BISMARCKPLATZ)]

    @pytest.mark.asyncio
    async def test_no_routes_is_failure(self):
        provider = ors(Recorder(httpx.Response(200, json={"features": []})))
        with pytest.raises(ProviderFailureError):
            await provider.directions(
                DirectionsRequest(coordinates=[HEIDELBERG, BISMARCKPLATZ])
            )


class TestOpenRouteServiceMatrix:
    @pytest.mark.asyncio
    async def test_splits_locations_into_sources_and_destinations(self):
        recorder = Recorder(
            httpx.Response(
                200,
                json={"durations": [[120.0], [None]], "distances": [[900.0], [None]]},
            )
        )
        provider = ors(recorder)
        request = MatrixRequest(
            sources=[HEIDELBERG, BISMARCKPLATZ], destinations=[(8.70, 49.40)]
        )

        matrix = await provider.matrix(request)

        assert matrix.duration(0, 0) == 120.0
        assert matrix.duration(1, 0) is None
        assert matrix.distance(0, 0) == 900.0
        body = recorder.last_json()
        assert body["sources"] == [0, 1]
        assert body["destinations"] == [2]
        assert len(body["locations"]) == 3
        assert recorder.last.url.path == "/v2/matrix/driving-car"

    @pytest.mark.asyncio
    async def test_wrong_shape_is_failure(self):
        provider = ors(
            Recorder(httpx.Response(200, json={"durations": [[1.0]], "distances": [[1.0]]}))
        )
        request = MatrixRequest(
            sources=[HEIDELBERG, BISMARCKPLATZ], destinations=[(8.70, 49.40)]
        )
        with pytest.raises(ProviderFailureError, match="requested shape"):
            await provider.matrix(request)

    @pytest.mark.asyncio
    async def test_missing_durations_is_failure(self):
        provider = ors(Recorder(httpx.Response(200, json={"distances": [[1.0]]})))
        request = MatrixRequest(sources=[HEIDELBERG], destinations=[BISMARCKPLATZ])
        with pytest.raises(ProviderFailureError, match="durations"):
            await provider.matrix(request)


class TestOpenRouteServicePointsOfInterest:
    @pytest.mark.asyncio
    async def test_parses_pois_and_caps_buffer(self):
        recorder = Recorder(
            httpx.Response(
                200,
                json={
                    "features": [
                        {
                            "geometry": {"coordinates": list(BISMARCKPLATZ)},
                            "properties": {
                                "osm_id": 42,
                                "category_ids": {
                                    "560": {
                                        "category_name": "restaurant",
                                        "category_group": "sustenance",
                                    }
                                },
                                "osm_tags": {
                                    "name": "Zum Roten Ochsen",
                                    "wheelchair": "yes",
                                    "addr:street": "Hauptstrasse",
                                    "addr:housenumber": "217",
                                },
                            },
                        }
                    ]
                },
            )
        )
        provider = ors(recorder)
        request = PointsOfInterestRequest(
            center=HEIDELBERG, radius=5000, categories=[560], wheelchair=True
        )

        pois = await provider.pois(request)

        assert len(pois) == 1
        poi = pois[0]
        assert poi.name == "Zum Roten Ochsen"
        assert poi.category == "restaurant"
        assert poi.category_id == 560
        assert poi.wheelchair is True
        assert poi.address == "Hauptstrasse 217"
        assert poi.distance > 0

        body = recorder.last_json()
        assert body["request"] == "pois"
        assert body["geometry"]["buffer"] == 2000
        assert body["filters"]["category_ids"] == [560]


class TestOpenRouteServiceIsochrones:
    @pytest.mark.asyncio
    async def test_parses_areas(self):
        recorder = Recorder(
            httpx.Response(
                200,
                json={
                    "features": [
                        {
                            "geometry": {
                                "type": "Polygon",
                                "coordinates": [
                                    [[8.6, 49.4], [8.7, 49.4], [8.7, 49.5], [8.6, 49.4]]
                                ],
                            },
                            "properties": {
                                "group_index": 0,
                                "value": 600.0,
                                "center": list(HEIDELBERG),
                                "area": 2.5,
                                "reachfactor": 0.42,
                            },
                        }
                    ]
                },
            )
        )
        provider = ors(recorder)
        request = IsochronesRequest(locations=[HEIDELBERG], ranges=[600])

        areas = await provider.isochrones(request)

        area = areas[0]
        assert area.value == 600.0
        assert area.minutes == 10.0
        assert area.area_sq_km == 2.5
        assert area.reachability_score == 0.42
        assert area.bounds == {"north": 49.5, "south": 49.4, "east": 8.7, "west": 8.6}
        assert recorder.last_json()["range"] == [600.0]


class TestOpenRouteServiceGeocoding:
    @pytest.mark.asyncio
    async def test_search(self):
        recorder = Recorder(
            httpx.Response(
                200,
                json={
                    "features": [
                        {
                            "geometry": {"coordinates": list(HEIDELBERG)},
                            "properties": {
                                "gid": "openstreetmap:venue:node/1",
                                "name": "Heidelberg Hbf",
                                "label": "Heidelberg Hbf, Heidelberg, Germany",
                                "confidence": 0.9,
                                "layer": "venue",
                                "country": "Germany",
                                "distance": 1.5,
                            },
                        }
                    ]
                },
            )
        )
        provider = ors(recorder)
        request = GeocodingRequest(
            text="Heidelberg Hbf", focus=BISMARCKPLATZ, countries=["DE"]
        )

        locations = await provider.geocode(request)

        location = locations[0]
        assert location.id == "openstreetmap:venue:node/1"
        assert location.address == "Heidelberg Hbf, Heidelberg, Germany"
        assert location.distance == 1500.0
        assert location.lng == HEIDELBERG[0]

        sent = recorder.last
        assert sent.method == "GET"
        assert sent.url.path == "/geocode/search"
        assert sent.url.params["text"] == "Heidelberg Hbf"
        assert sent.url.params["boundary.country"] == "DE"

    @pytest.mark.asyncio
    async def test_reverse_sends_point(self):
        recorder = Recorder(httpx.Response(200, json={"features": []}))
        provider = ors(recorder)
        request = GeocodingRequest(mode="reverse", point=HEIDELBERG)

        assert await provider.geocode(request) == []
        params = recorder.last.url.params
        assert recorder.last.url.path == "/geocode/reverse"
        assert float(params["point.lon"]) == HEIDELBERG[0]
        assert float(params["point.lat"]) == HEIDELBERG[1]


class TestFailureModes:
    """Every transport problem surfaces as ProviderFailureError."""

    @pytest.mark.asyncio
    async def test_server_error(self):
        provider = ors(Recorder(httpx.Response(503, json={"error": "busy"})))
        with pytest.raises(ProviderFailureError) as exc_info:
            await provider.geocode(GeocodingRequest(text="x"))
        assert exc_info.value.upstream_status == 503
        assert exc_info.value.provider == "openrouteservice"

    @pytest.mark.asyncio
    async def test_upstream_rate_limit(self):
        provider = ors(Recorder(httpx.Response(429)))
        with pytest.raises(ProviderFailureError) as exc_info:
            await provider.geocode(GeocodingRequest(text="x"))
        assert exc_info.value.upstream_status == 429

    @pytest.mark.asyncio
    async def test_timeout(self):
        provider = ors(Recorder(error=lambda req: httpx.ReadTimeout("slow", request=req)))
        with pytest.raises(ProviderFailureError, match="timed out"):
            await provider.geocode(GeocodingRequest(text="x"))

    @pytest.mark.asyncio
    async def test_connection_error(self):
        provider = ors(Recorder(error=lambda req: httpx.ConnectError("refused", request=req)))
        with pytest.raises(ProviderFailureError, match="ConnectError"):
            await provider.geocode(GeocodingRequest(text="x"))

    @pytest.mark.asyncio
    async def test_body_not_json(self):
        provider = ors(Recorder(httpx.Response(200, text="<html>maintenance</html>")))
        with pytest.raises(ProviderFailureError, match="not JSON"):
            await provider.geocode(GeocodingRequest(text="x"))

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        provider = ors(Recorder(httpx.Response(200, json={"type": "FeatureCollection"})))
        with pytest.raises(ProviderFailureError, match="missing"):
            await provider.geocode(GeocodingRequest(text="x"))

    @pytest.mark.asyncio
    async def test_server_error_retried_once_when_configured(self):
        responses = iter([httpx.Response(502), httpx.Response(200, json={"features": []})])
        calls = []

        def handler(request):
            calls.append(request)
            return next(responses)

        provider = OpenRouteServiceProvider(
            base_url="https://ors.test",
            api_key="ors-key",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            retry_policy=RetryPolicy(max_retries=1, base_delay=0.0),
        )
        assert await provider.geocode(GeocodingRequest(text="x")) == []
        assert len(calls) == 2


class TestNominatim:
    def provider(self, recorder):
        return NominatimProvider(
            base_url="https://nominatim.test",
            user_agent="routegate-tests/1.0",
            http_client=client_for(recorder),
        )

    @pytest.mark.asyncio
    async def test_search(self):
        recorder = Recorder(
            httpx.Response(
                200,
                json=[
                    {
                        "osm_id": 123,
                        "display_name": "Heidelberg Hauptbahnhof, Willy-Brandt-Platz, Heidelberg",
                        "lat": "49.4036",
                        "lon": "8.6757",
                        "importance": 0.6,
                        "type": "station",
                        "address": {"country": "Deutschland", "state": "Baden-Wuerttemberg"},
                    }
                ],
            )
        )
        request = GeocodingRequest(
            mode="autocomplete", text="Heidelberg Hauptbahnhof", countries=["DE"], size=3
        )

        locations = await self.provider(recorder).geocode(request)

        location = locations[0]
        assert location.id == "osm_123"
        assert location.name == "Heidelberg Hauptbahnhof"
        assert location.lat == 49.4036
        assert location.region == "Baden-Wuerttemberg"
        assert location.distance is None

        sent = recorder.last
        assert sent.url.path == "/search"
        assert sent.url.params["q"] == "Heidelberg Hauptbahnhof"
        assert sent.url.params["countrycodes"] == "de"
        assert sent.url.params["limit"] == "3"
        assert sent.headers["User-Agent"] == "routegate-tests/1.0"

    @pytest.mark.asyncio
    async def test_reverse(self):
        recorder = Recorder(
            httpx.Response(
                200,
                json={
                    "display_name": "Bismarckplatz, Heidelberg",
                    "lat": str(BISMARCKPLATZ[1]),
                    "lon": str(BISMARCKPLATZ[0]),
                },
            )
        )
        request = GeocodingRequest(mode="reverse", point=BISMARCKPLATZ)

        locations = await self.provider(recorder).geocode(request)

        assert len(locations) == 1
        assert locations[0].name == "Bismarckplatz"
        assert locations[0].distance == pytest.approx(0.0, abs=0.01)
        assert recorder.last.url.path == "/reverse"

    @pytest.mark.asyncio
    async def test_reverse_with_nothing_found(self):
        recorder = Recorder(httpx.Response(200, json={"error": "Unable to geocode"}))
        request = GeocodingRequest(mode="reverse", point=(0.0, 0.0))
        assert await self.provider(recorder).geocode(request) == []


class TestOverpass:
    def test_tags_for_known_categories(self):
        assert tags_for_categories([470, 480]) == [("amenity", "fuel"), ("amenity", "parking")]

    def test_unknown_categories_default_to_restaurants(self):
        assert tags_for_categories([9999]) == DEFAULT_TAGS
        assert tags_for_categories([]) == DEFAULT_TAGS

    def test_build_query(self):
        request = PointsOfInterestRequest(
            center=HEIDELBERG, radius=750, categories=[470], limit=5
        )
        query = build_query(request, timeout=8)
        around = f"(around:750,{HEIDELBERG[1]},{HEIDELBERG[0]})"
        assert query == (
            "[out:json][timeout:8];"
            f'(node["amenity"="fuel"]{around};way["amenity"="fuel"]{around};);'
            "out center 5;"
        )

    @pytest.mark.asyncio
    async def test_pois(self):
        recorder = Recorder(
            httpx.Response(
                200,
                json={
                    "elements": [
                        {
                            "type": "node",
                            "id": 1,
                            "lat": 49.415,
                            "lon": 8.682,
                            "tags": {"amenity": "fuel", "brand": "Aral"},
                        },
                        {
                            "type": "way",
                            "id": 2,
                            "center": {"lat": 49.416, "lon": 8.683},
                            "tags": {"amenity": "fuel", "name": "Shell", "fee": "yes"},
                        },
                        {"type": "node", "id": 3, "lat": 49.417, "lon": 8.684, "tags": {}},
                    ]
                },
            )
        )
        provider = OverpassProvider(
            base_url="https://overpass.test/api",
            user_agent="routegate-tests/1.0",
            http_client=client_for(recorder),
        )
        request = PointsOfInterestRequest(center=HEIDELBERG, categories=[470], limit=2)

        pois = await provider.pois(request)

        assert [p.name for p in pois] == ["Aral", "Shell"]
        assert pois[0].category == "Gas Station"
        assert pois[0].category_id == 470
        assert pois[1].lat == 49.416
        assert pois[1].fee is True

        sent = recorder.last
        assert sent.method == "POST"
        assert sent.url.path == "/api/interpreter"
        form = parse_qs(sent.content.decode())
        assert form["data"][0].startswith("[out:json]")
