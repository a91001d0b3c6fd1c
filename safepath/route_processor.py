"""
Turns raw provider routes into scored routes.

For each candidate the processor:
  1. normalizes the provider geometry into one ordered point list
  2. samples up to MAX_SAMPLED_SEGMENTS evenly spaced segments (always
     keeping the final one)
  3. scores the sampled segments with bounded concurrency
  4. averages the segment ISC and computes the route cost

A segment that fails to score gets a fixed neutral result; a route whose
points cannot be extracted is dropped. Neither aborts the request.
"""

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from .config import MAX_SAMPLED_SEGMENTS, SEGMENT_CONCURRENCY
from .cost import calculate_optimal_cost
from .errors import NoProcessableRoutes
from .geo import decode_polyline, distance as geo_distance, make_segment
from .isc import (
    SignalProviders,
    apply_filters_to_isc,
    calculate_isc,
    current_hour,
    passes_filter_constraints,
    resolve_time_of_day,
)
from .models import (
    Coordinate,
    ISCBreakdown,
    ISCResult,
    ProcessedRoute,
    RouteCandidate,
    RouteFilters,
    ScoredSegment,
    UnsafeSegment,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNSAFE_ISC_THRESHOLD = 0.5
DEFAULT_ROUTE_ISC = 0.5
FALLBACK_ISC = ISCResult(
    isc=0.5,
    breakdown=ISCBreakdown(lighting=0.7, weather=0.7, crowd=0.7, reports=1.0, traffic=0.7),
)


def _to_coordinate(point: Any) -> Coordinate:
    """Accepts {latitude, longitude}, {lat, lon}, {lat, lng} or [lat, lon]."""
    if isinstance(point, dict):
        if "latitude" in point:
            return Coordinate(lat=float(point["latitude"]), lon=float(point["longitude"]))
        if "lat" in point:
            lon = point["lon"] if "lon" in point else point["lng"]
            return Coordinate(lat=float(point["lat"]), lon=float(lon))
    elif isinstance(point, (list, tuple)) and len(point) >= 2:
        return Coordinate(lat=float(point[0]), lon=float(point[1]))
    raise ValueError(f"Unrecognized route point: {point!r}")


def extract_points(route: Dict[str, Any]) -> List[Coordinate]:
    """
    Flatten any accepted provider route shape into an ordered point list.

    Accepted shapes, tried in order:
      - legs: [{points: [...]}, ...]   (all legs, concatenated)
      - legs: {points: [...]}
      - sections: [{points: [...]}, ...]
      - points: [...]
      - geometry: encoded polyline string
      - geometry: GeoJSON LineString ([lon, lat] pairs)

    Raises ValueError on a malformed point rather than skipping it.
    """
    raw: List[Any] = []

    legs = route.get("legs")
    if isinstance(legs, list):
        for leg in legs:
            raw.extend((leg or {}).get("points") or [])
    elif isinstance(legs, dict):
        raw.extend(legs.get("points") or [])

    if not raw and isinstance(route.get("sections"), list):
        for section in route["sections"]:
            raw.extend((section or {}).get("points") or [])

    if not raw and isinstance(route.get("points"), list):
        raw = route["points"]

    geometry = route.get("geometry")
    if not raw and isinstance(geometry, str) and geometry:
        raw = decode_polyline(geometry)
    elif not raw and isinstance(geometry, dict):
        raw = [(lat, lon) for lon, lat, *_ in geometry.get("coordinates") or []]

    return [_to_coordinate(p) for p in raw]


def extract_summary(route: Dict[str, Any]) -> Tuple[float, float]:
    """(distance in metres, travel time in seconds) from route or leg summaries."""

    def read(summary: Dict[str, Any]) -> Tuple[float, float]:
        distance = summary.get("lengthInMeters", summary.get("distance", 0)) or 0
        duration = summary.get("travelTimeInSeconds", summary.get("duration", 0)) or 0
        return float(distance), float(duration)

    if isinstance(route.get("summary"), dict):
        return read(route["summary"])

    legs = route.get("legs")
    if isinstance(legs, dict):
        legs = [legs]
    distance = duration = 0.0
    for leg in legs or []:
        if isinstance((leg or {}).get("summary"), dict):
            d, t = read(leg["summary"])
            distance += d
            duration += t
    return distance, duration


def extract_candidate(route: Dict[str, Any], route_index: int = 0) -> Optional[RouteCandidate]:
    if not isinstance(route, dict):
        logger.warning("[ROUTING] route %d is not an object; skipping", route_index)
        return None
    try:
        points = extract_points(route)
        distance, duration = extract_summary(route)
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        logger.warning("[ROUTING] route %d has invalid geometry: %s", route_index, exc)
        return None

    if len(points) < 2:
        logger.warning("[ROUTING] route %d has %d point(s); skipping", route_index, len(points))
        return None

    if distance <= 0:
        # provider gave no length; measure the polyline instead
        distance = sum(geo_distance(a, b) for a, b in zip(points, points[1:]))

    return RouteCandidate(
        points=points,
        distance_m=max(0.0, distance),
        travel_time_s=max(0.0, duration),
    )


def sample_segment_indices(point_count: int, max_segments: int = MAX_SAMPLED_SEGMENTS) -> List[int]:
    """
    Evenly spaced segment start indices with stride max(1, point_count // max_segments),
    widened when needed so no more than max_segments are picked.
    The cap wins over the literal floor(n / 50) stride when the two conflict.

    The final segment (point_count - 2) is always present. When the stride
    already fills the cap, the last stride pick is swapped for it.
    """
    if point_count < 2:
        return []
    step = max(1, point_count // max_segments, math.ceil((point_count - 1) / max_segments))
    indices = list(range(0, point_count - 1, step))
    last = point_count - 2
    if indices[-1] != last:
        if len(indices) >= max_segments:
            indices[-1] = last
        else:
            indices.append(last)
    return indices


async def bounded_gather(
    items: Sequence[T],
    func: Callable[[T], Awaitable[Any]],
    limit: int = SEGMENT_CONCURRENCY,
) -> List[Any]:
    """Run func over items with at most `limit` in flight; results keep input order."""
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(item: T) -> Any:
        async with semaphore:
            return await func(item)

    return list(await asyncio.gather(*(run(item) for item in items)))


async def score_segment(
    index: int,
    points: Sequence[Coordinate],
    providers: SignalProviders,
    time_of_day: Optional[int] = None,
    filters: Optional[RouteFilters] = None,
) -> ScoredSegment:
    segment = make_segment(points[index], points[index + 1])
    try:
        result = await calculate_isc(segment, providers, time_of_day)
    except Exception as exc:
        logger.warning("[ISC] segment %d failed, using neutral score: %r", index, exc)
        result = FALLBACK_ISC

    isc = result.isc
    passes = True
    if filters is not None:
        isc = apply_filters_to_isc(result.isc, result.breakdown, filters)
        passes = passes_filter_constraints(result.isc, result.breakdown, filters)

    return ScoredSegment(
        index=index,
        start=segment.start,
        end=segment.end,
        center=segment.center,
        isc=isc,
        base_isc=result.isc,
        breakdown=result.breakdown,
        passes_constraints=passes,
    )


async def process_route(
    route_index: int,
    candidate: RouteCandidate,
    alpha: float,
    providers: SignalProviders,
    filters: Optional[RouteFilters] = None,
    time_of_day: Optional[int] = None,
    max_segments: int = MAX_SAMPLED_SEGMENTS,
    concurrency: int = SEGMENT_CONCURRENCY,
) -> ProcessedRoute:
    points = candidate.points
    indices = sample_segment_indices(len(points), max_segments)

    segments: List[ScoredSegment] = await bounded_gather(
        indices,
        lambda i: score_segment(i, points, providers, time_of_day, filters),
        concurrency,
    )

    avg_isc = (
        sum(s.isc for s in segments) / len(segments) if segments else DEFAULT_ROUTE_ISC
    )
    unsafe = [
        UnsafeSegment(segment=s.index, isc=s.isc, location=s.center)
        for s in segments
        if s.isc < UNSAFE_ISC_THRESHOLD
    ]
    optimal_cost = calculate_optimal_cost(avg_isc, candidate.distance_m, alpha, filters)

    logger.info(
        "[ISC] route %d: %d/%d segments scored, avg ISC %.3f, cost %.3f, %d unsafe",
        route_index,
        len(segments),
        len(points) - 1,
        avg_isc,
        optimal_cost,
        len(unsafe),
    )

    return ProcessedRoute(
        route_index=route_index,
        distance=candidate.distance_m,
        duration=candidate.travel_time_s,
        isc=avg_isc,
        optimal_cost=optimal_cost,
        unsafe_segments=unsafe,
        segments=segments,
        polyline=[(p.lat, p.lon) for p in points],
        constraint_violations=sum(1 for s in segments if not s.passes_constraints),
    )


async def process_routes(
    raw_routes: Sequence[Dict[str, Any]],
    alpha: float,
    providers: SignalProviders,
    filters: Optional[RouteFilters] = None,
) -> List[ProcessedRoute]:
    """Score every usable candidate concurrently, keeping provider order."""
    time_of_day = resolve_time_of_day(filters)
    if time_of_day is None:
        time_of_day = current_hour()

    jobs = []
    for index, raw in enumerate(raw_routes):
        candidate = extract_candidate(raw, index)
        if candidate is not None:
            jobs.append(process_route(index, candidate, alpha, providers, filters, time_of_day))

    if not jobs:
        raise NoProcessableRoutes("Unable to process route data from the routing provider")

    return list(await asyncio.gather(*jobs))
