"""Multi-stop ordering on top of the matrix endpoint class.

``optimize`` asks the gateway for a full pairwise matrix and orders the
stops with a nearest-neighbour walk from the first stop. This is a greedy
heuristic: the result is always a valid visiting order starting at the
first stop, and the reported saving is never negative, but it is not
guaranteed to be optimal.
"""

import math
from typing import List, Optional, Sequence

from routegate.app.core.endpoints import EndpointClass
from routegate.app.core.geo import format_distance, format_duration
from routegate.app.core.logging import get_log_context, get_logger
from routegate.app.exceptions import InvalidRequestError, ProviderFailureError
from routegate.app.models import (
    DistanceMatrix,
    MatrixRequest,
    OptimizedRoute,
    RankedDestination,
    RouteComparison,
    RouteSegment,
    TransportProfile,
    Waypoint,
)
from routegate.app.services.provider_gateway import ProviderGateway

logger = get_logger(__name__)


def nearest_neighbour_order(durations: Sequence[Sequence[Optional[float]]]) -> List[int]:
    """Greedy visiting order over a square duration table.

    Starts at index 0 and repeatedly moves to the unvisited index with the
    smallest duration from the current one; ties go to the lower index.
    Unroutable (None) cells count as infinitely long, so they are only
    taken when nothing reachable is left.
    """
    n = len(durations)
    if n == 0:
        return []
    order = [0]
    visited = [False] * n
    visited[0] = True
    for _ in range(1, n):
        current = order[-1]
        nearest = -1
        nearest_cost = math.inf
        for j in range(n):
            if visited[j]:
                continue
            cost = durations[current][j]
            cost = math.inf if cost is None else cost
            if nearest == -1 or cost < nearest_cost:
                nearest = j
                nearest_cost = cost
        order.append(nearest)
        visited[nearest] = True
    return order


def path_totals(matrix: DistanceMatrix, order: Sequence[int]) -> tuple:
    """Sum defined durations and distances along consecutive pairs of ``order``.

    Returns:
        (duration, distance, routable), where ``routable`` is False when any
        leg has no duration. Undefined legs add nothing to the sums.
    """
    duration = 0.0
    distance = 0.0
    routable = True
    for a, b in zip(order, order[1:]):
        d = matrix.duration(a, b)
        m = matrix.distance(a, b)
        if d is None:
            routable = False
        duration += d if d is not None else 0.0
        distance += m if m is not None else 0.0
    return duration, distance, routable


def percent_saved(saved: float, baseline: float) -> int:
    if baseline <= 0:
        return 0
    # round half up
    percent = math.floor(saved / baseline * 100 + 0.5)
    return max(0, min(100, percent))


class WaypointOptimizer:
    """Stop ordering and comparisons using matrices from the gateway."""

    def __init__(self, gateway: ProviderGateway) -> None:
        self._gateway = gateway

    async def _matrix(
        self,
        sources: List[Waypoint],
        destinations: List[Waypoint],
        profile: TransportProfile,
    ):
        request = MatrixRequest(
            profile=profile,
            sources=[w.coordinates for w in sources],
            destinations=[w.coordinates for w in destinations],
            metrics=["duration", "distance"],
        )
        return await self._gateway.invoke(EndpointClass.MATRIX, request)

    async def optimize(
        self,
        waypoints: Sequence[Waypoint],
        profile: TransportProfile = TransportProfile.DRIVING_CAR,
    ) -> OptimizedRoute:
        """Reorder ``waypoints`` to reduce total travel time.

        Args:
            waypoints: Stops in their original order; the first is the start
            profile: Transport profile for the matrix request

        Returns:
            OptimizedRoute with the new order, totals and savings versus the
            original order

        Raises:
            InvalidRequestError: Fewer than two waypoints
        """
        waypoints = list(waypoints)
        if len(waypoints) < 2:
            raise InvalidRequestError("At least 2 waypoints are required for optimization")

        outcome = await self._matrix(waypoints, waypoints, profile)
        matrix: DistanceMatrix = outcome.result
        n = len(waypoints)
        if len(matrix.durations) != n or any(len(row) != n for row in matrix.durations):
            raise ProviderFailureError(
                "Matrix does not match the waypoint count",
                endpoint_class=EndpointClass.MATRIX.value,
            )

        order = nearest_neighbour_order(matrix.durations)
        total_duration, total_distance, routable = path_totals(matrix, order)
        baseline_duration, baseline_distance, _ = path_totals(matrix, list(range(n)))

        # A route with an impossible leg saves nothing.
        if routable:
            duration_saved = max(0.0, baseline_duration - total_duration)
            distance_saved = max(0.0, baseline_distance - total_distance)
        else:
            duration_saved = 0.0
            distance_saved = 0.0
            logger.warning(
                "Optimized order contains an unroutable leg",
                extra=get_log_context(endpoint_class=EndpointClass.MATRIX.value),
            )
        segments = [
            RouteSegment(
                from_index=a,
                to_index=b,
                duration=matrix.duration(a, b),
                distance=matrix.distance(a, b),
            )
            for a, b in zip(order, order[1:])
        ]

        result = OptimizedRoute(
            ordered_waypoints=[waypoints[i] for i in order],
            order=order,
            segments=segments,
            total_duration=total_duration,
            total_distance=total_distance,
            duration_formatted=format_duration(total_duration),
            distance_formatted=format_distance(total_distance),
            baseline_duration=baseline_duration,
            baseline_distance=baseline_distance,
            duration_saved=duration_saved,
            distance_saved=distance_saved,
            percent_saved=percent_saved(duration_saved, baseline_duration),
            matrix_provenance=outcome.provenance.value,
            routable=routable,
        )
        logger.info(
            f"Optimized {n} waypoints: saved {duration_saved:.0f}s ({result.percent_saved}%)",
            extra=get_log_context(
                endpoint_class=EndpointClass.MATRIX.value,
                provenance=outcome.provenance.value,
            ),
        )
        return result

    async def compare(
        self,
        source: Waypoint,
        destinations: Sequence[Waypoint],
        profile: TransportProfile = TransportProfile.DRIVING_CAR,
    ) -> RouteComparison:
        """Rank ``destinations`` by travel time from ``source``.

        Unroutable destinations are left out of the ranking.
        """
        destinations = list(destinations)
        if not destinations:
            raise InvalidRequestError("At least 1 destination is required")

        outcome = await self._matrix([source], destinations, profile)
        matrix: DistanceMatrix = outcome.result

        reachable = []
        for j, waypoint in enumerate(destinations):
            duration = matrix.duration(0, j)
            if duration is None:
                continue
            distance = matrix.distance(0, j)
            reachable.append((duration, j, waypoint, distance))
        reachable.sort(key=lambda item: (item[0], item[1]))

        ranked = [
            RankedDestination(
                index=j,
                waypoint=waypoint,
                duration=duration,
                distance=distance,
                duration_formatted=format_duration(duration),
                distance_formatted=format_distance(distance) if distance is not None else None,
                rank=rank,
            )
            for rank, (duration, j, waypoint, distance) in enumerate(reachable, start=1)
        ]
        return RouteComparison(source=source, profile=profile, destinations=ranked)

    async def nearest(
        self,
        source: Waypoint,
        candidates: Sequence[Waypoint],
        profile: TransportProfile = TransportProfile.DRIVING_CAR,
    ) -> RankedDestination:
        """The candidate with the shortest travel time from ``source``.

        Raises:
            InvalidRequestError: No candidate is reachable
        """
        comparison = await self.compare(source, candidates, profile)
        if not comparison.destinations:
            raise InvalidRequestError("No reachable destination found")
        return comparison.destinations[0]
