"""HTTP surface over the gateway and optimizer.

Every gateway route answers ``{"result": ..., "provenance": ...}``;
errors are rendered by the GatewayException handler in ``main``.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder

from routegate.app.core.endpoints import EndpointClass
from routegate.app.models import (
    CompareRequest,
    DirectionsRequest,
    GeocodingRequest,
    IsochronesRequest,
    MatrixRequest,
    OptimizeRequest,
    PointsOfInterestRequest,
)
from routegate.app.services.container import Container
from routegate.app.services.provider_gateway import GatewayResult

router = APIRouter(prefix="/v1", tags=["routing"])


def get_container(request: Request) -> Container:
    """FastAPI dependency returning the container built at startup."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Application container is not initialized")
    return container


def _envelope(outcome: GatewayResult) -> Dict[str, Any]:
    return {
        "result": jsonable_encoder(outcome.result),
        "provenance": outcome.provenance.value,
    }


@router.post("/directions")
async def directions(
    body: DirectionsRequest, container: Container = Depends(get_container)
) -> Dict[str, Any]:
    return _envelope(await container.gateway.invoke(EndpointClass.DIRECTIONS, body))


@router.post("/pois")
async def points_of_interest(
    body: PointsOfInterestRequest, container: Container = Depends(get_container)
) -> Dict[str, Any]:
    return _envelope(
        await container.gateway.invoke(EndpointClass.POINTS_OF_INTEREST, body)
    )


@router.post("/matrix")
async def matrix(
    body: MatrixRequest, container: Container = Depends(get_container)
) -> Dict[str, Any]:
    return _envelope(await container.gateway.invoke(EndpointClass.MATRIX, body))


@router.post("/isochrones")
async def isochrones(
    body: IsochronesRequest, container: Container = Depends(get_container)
) -> Dict[str, Any]:
    return _envelope(await container.gateway.invoke(EndpointClass.ISOCHRONES, body))


@router.post("/geocode")
async def geocode(
    body: GeocodingRequest, container: Container = Depends(get_container)
) -> Dict[str, Any]:
    return _envelope(await container.gateway.invoke(EndpointClass.GEOCODING, body))


@router.post("/optimize")
async def optimize(
    body: OptimizeRequest, container: Container = Depends(get_container)
) -> Dict[str, Any]:
    """Reorder waypoints to reduce total travel time."""
    route = await container.optimizer.optimize(body.waypoints, body.profile)
    return jsonable_encoder(route)


@router.post("/compare")
async def compare(
    body: CompareRequest, container: Container = Depends(get_container)
) -> Dict[str, Any]:
    """Rank destinations by travel time from a source."""
    comparison = await container.optimizer.compare(
        body.source, body.destinations, body.profile
    )
    return jsonable_encoder(comparison)


@router.post("/nearest")
async def nearest(
    body: CompareRequest, container: Container = Depends(get_container)
) -> Dict[str, Any]:
    """The destination with the shortest travel time from a source."""
    best = await container.optimizer.nearest(body.source, body.destinations, body.profile)
    return jsonable_encoder(best)


@router.get("/quota")
async def quota_overview(container: Container = Depends(get_container)) -> Dict[str, Any]:
    return {
        endpoint_class.value: status.to_dict()
        for endpoint_class, status in container.ledger.status_all().items()
    }


# Declared before /quota/{endpoint_class} so "stats" is not taken as a class
@router.get("/quota/stats")
async def quota_stats(container: Container = Depends(get_container)) -> Dict[str, Any]:
    return container.ledger.usage_stats()


@router.get("/quota/{endpoint_class}")
async def quota_status(
    endpoint_class: EndpointClass, container: Container = Depends(get_container)
) -> Dict[str, Any]:
    return container.ledger.status(endpoint_class).to_dict()
