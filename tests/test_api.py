"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeClock, make_stub_adapters
from routegate.app.core.cache import InMemoryCache
from routegate.app.core.config import Settings
from routegate.app.core.endpoints import EndpointClass
from routegate.app.exceptions import ProviderFailureError
from routegate.app.main import create_app
from routegate.app.models import DistanceMatrix
from routegate.app.services.container import build_container

ROUTE = {"coordinates": [[8.681495, 49.41461], [8.687872, 49.420318]]}


@pytest.fixture
def settings():
    return Settings(_env_file=None, directions_daily_limit=1, matrix_daily_limit=10)


@pytest.fixture
def adapters(settings):
    return make_stub_adapters(settings.endpoint_configs())


@pytest.fixture
def container(settings, adapters):
    return build_container(
        settings, storage=InMemoryCache(), adapters=adapters, clock=FakeClock()
    )


@pytest.fixture
def client(settings, container):
    app = create_app(settings, container=container)
    with TestClient(app) as test_client:
        yield test_client


class TestGatewayRoutes:
    def test_directions_real_then_cached(self, client):
        first = client.post("/v1/directions", json=ROUTE)
        second = client.post("/v1/directions", json=ROUTE)

        assert first.status_code == 200
        assert first.json() == {"result": "directions-primary", "provenance": "real"}
        assert second.json()["provenance"] == "cached"
        assert "X-Request-ID" in first.headers

    def test_quota_exhausted_without_fallback(self, client):
        client.post("/v1/directions", json=ROUTE)
        other = {"coordinates": [[8.68, 49.41], [8.70, 49.43]]}

        response = client.post("/v1/directions", json=other, headers={"X-Request-ID": "r-1"})

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "quota_exceeded"
        assert body["reason"] == "Daily quota exceeded (1/1)"
        assert body["request_id"] == "r-1"

    def test_geocode_falls_back(self, client, adapters):
        adapter = adapters[EndpointClass.GEOCODING]
        adapter.primary_call.side_effect = ProviderFailureError("ors down")

        response = client.post("/v1/geocode", json={"text": "Heidelberg"})

        assert response.status_code == 200
        assert response.json() == {"result": "geocoding-fallback", "provenance": "fallback"}

    def test_provider_failure_maps_to_502(self, client, adapters):
        adapter = adapters[EndpointClass.ISOCHRONES]
        adapter.primary_call.side_effect = ProviderFailureError("ors down")

        response = client.post(
            "/v1/isochrones", json={"locations": [[8.68, 49.41]], "ranges": [300]}
        )

        assert response.status_code == 502
        assert response.json()["error"] == "provider_failure"
        assert "ors down" not in response.json()["message"]

    def test_invalid_body_rejected(self, client):
        response = client.post("/v1/directions", json={"coordinates": [[8.68, 49.41]]})
        assert response.status_code == 422


class TestOptimizerRoutes:
    def test_optimize(self, client, adapters):
        stops = [[8.68, 49.41], [8.69, 49.42], [8.70, 49.43]]
        adapter = adapters[EndpointClass.MATRIX]
        adapter.primary_call.return_value = DistanceMatrix(
            sources=stops,
            destinations=stops,
            durations=[[0, 10, 2], [10, 0, 1], [2, 1, 0]],
            distances=[[0, 100, 20], [100, 0, 10], [20, 10, 0]],
        )

        response = client.post(
            "/v1/optimize",
            json={"waypoints": [{"coordinates": s} for s in stops]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["order"] == [0, 2, 1]
        assert body["percent_saved"] == 73
        assert body["matrix_provenance"] == "real"

    def test_optimize_needs_two_waypoints(self, client):
        response = client.post(
            "/v1/optimize", json={"waypoints": [{"coordinates": [8.68, 49.41]}]}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_nearest(self, client, adapters):
        source = [8.68, 49.41]
        destinations = [[8.69, 49.42], [8.70, 49.43]]
        adapter = adapters[EndpointClass.MATRIX]
        adapter.primary_call.return_value = DistanceMatrix(
            sources=[source],
            destinations=destinations,
            durations=[[90.0, 30.0]],
            distances=[[900.0, 300.0]],
        )

        response = client.post(
            "/v1/nearest",
            json={
                "source": {"coordinates": source},
                "destinations": [
                    {"coordinates": d, "label": f"d{i}"} for i, d in enumerate(destinations)
                ],
            },
        )

        assert response.status_code == 200
        assert response.json()["waypoint"]["label"] == "d1"


class TestQuotaRoutes:
    def test_overview(self, client):
        client.post("/v1/directions", json=ROUTE)
        body = client.get("/v1/quota").json()
        assert set(body) == {c.value for c in EndpointClass}
        assert body["directions"]["daily_used"] == 1
        assert body["directions"]["exceeded"] is True

    def test_single_class(self, client):
        body = client.get("/v1/quota/matrix").json()
        assert body["endpoint_class"] == "matrix"
        assert body["daily_limit"] == 10

    def test_unknown_class(self, client):
        assert client.get("/v1/quota/teleport").status_code == 422

    def test_stats(self, client):
        client.post("/v1/directions", json=ROUTE)
        client.post("/v1/directions", json=ROUTE)
        stats = client.get("/v1/quota/stats").json()
        assert stats["directions"]["real-success"] == 1
        assert stats["directions"]["cache-hit"] == 1


class TestHealth:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["components"]["storage"]["status"] == "ok"
        assert body["components"]["quota"]["exhausted"] == []

    def test_health_reports_exhausted_classes(self, client):
        client.post("/v1/directions", json=ROUTE)
        body = client.get("/health").json()
        assert body["components"]["quota"]["status"] == "limited"
        assert body["components"]["quota"]["exhausted"] == ["directions"]
