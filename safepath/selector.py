"""
Pick the shortest, safest and balanced routes out of the scored candidates.

Selection only labels candidates; it never reorders or mutates them. With
three or more candidates it tries to return three different routes.
"""

import logging
from typing import Hashable, List, Sequence

from .errors import NoProcessableRoutes
from .models import ProcessedRoute, RouteSelection

logger = logging.getLogger(__name__)


def route_identity(route: ProcessedRoute) -> Hashable:
    """Stable identity of a candidate: its position in the provider response."""
    return route.route_index


def select_routes(routes: Sequence[ProcessedRoute]) -> RouteSelection:
    if not routes:
        raise NoProcessableRoutes("No processable routes")

    # sorted() is stable, so ties keep provider order
    by_distance: List[ProcessedRoute] = sorted(routes, key=lambda r: r.distance)
    by_safety: List[ProcessedRoute] = sorted(routes, key=lambda r: -r.isc)
    by_cost: List[ProcessedRoute] = sorted(routes, key=lambda r: r.optimal_cost)

    shortest = by_distance[0]
    safest = by_safety[0]
    balanced = by_cost[0]

    if len(routes) >= 3:
        if route_identity(safest) == route_identity(shortest):
            safest = by_safety[1] if len(by_safety) > 1 else by_safety[0]

        taken = {route_identity(shortest), route_identity(safest)}
        if route_identity(balanced) in taken:
            balanced = routes[len(routes) // 2]
            if route_identity(balanced) in taken:
                balanced = next(
                    (r for r in by_cost if route_identity(r) not in taken), balanced
                )

    logger.info(
        "[SELECT] shortest=%d safest=%d balanced=%d (of %d)",
        shortest.route_index,
        safest.route_index,
        balanced.route_index,
        len(routes),
    )
    return RouteSelection(shortest=shortest, safest=safest, balanced=balanced)
