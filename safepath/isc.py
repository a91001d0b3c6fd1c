"""
Incident Safety Coefficient (ISC) for a route segment.

    ISC = 0.20 * lighting + 0.20 * weather + 0.15 * crowd
        + 0.30 * reports + 0.15 * traffic

Every factor is in [0, 1] where 1 is safest. Lighting and crowd are pure
functions of the hour; weather, reports and traffic are live lookups that
run concurrently and fall back to fixed defaults when a provider fails.

Per-user preferences are layered on top in two separate ways:
  - apply_filters_to_isc: multiplicative penalties/bonuses on the score
  - passes_filter_constraints: a boolean admission gate
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .config import PROVIDER_TIMEOUT_S
from .geo import bounding_box, flat_distance_deg
from .models import ISCBreakdown, ISCResult, RouteFilters, Segment, TrafficFlow
from .providers import TrafficSource, WeatherSource, weather_to_safety_factor
from .reports import ReportStore

logger = logging.getLogger(__name__)

ISC_WEIGHTS = {
    "lighting": 0.20,
    "weather": 0.20,
    "crowd": 0.15,
    "reports": 0.30,
    "traffic": 0.15,
}

# Fallbacks when a live signal is unavailable
DEFAULT_WEATHER_FACTOR = 0.7
DEFAULT_REPORTS_FACTOR = 0.8
DEFAULT_TRAFFIC_FACTOR = 0.7

DEFAULT_FREE_FLOW_SPEED = 50.0
REPORT_WINDOW = timedelta(minutes=30)
REPORT_RADIUS_DEG = 0.001  # ~100 m
TRAFFIC_BOX_HALF_DEG = 0.01  # ~2 km box


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SignalProviders:
    weather: WeatherSource
    traffic: TrafficSource
    reports: ReportStore
    timeout: float = PROVIDER_TIMEOUT_S
    clock: Callable[[], datetime] = field(default=_utcnow)


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def current_hour() -> int:
    return datetime.now().hour


def lighting_factor(hour: Optional[int] = None) -> float:
    """Daytime (06:00-20:00) is treated as well lit."""
    if hour is None:
        hour = current_hour()
    if 6 <= hour < 20:
        return 1.0
    return 0.6


def crowd_factor(hour: Optional[int] = None) -> float:
    """More people around is safer: peak commute high, late night low."""
    if hour is None:
        hour = current_hour()
    if hour >= 22 or hour < 6:
        return 0.5
    if 7 <= hour <= 9 or 17 <= hour <= 19:
        return 0.9
    return 0.7


def reports_factor_from_count(nearby_reports: int) -> float:
    if nearby_reports <= 0:
        return 1.0
    if nearby_reports == 1:
        return 0.7
    return 0.4


def traffic_factor_from_flow(flow: Optional[TrafficFlow]) -> float:
    """Moderate traffic (50-80% of free flow) is safest for pedestrians."""
    if flow is None:
        return DEFAULT_TRAFFIC_FACTOR
    current_speed = flow.current_speed or 0.0
    free_flow_speed = flow.free_flow_speed or DEFAULT_FREE_FLOW_SPEED
    speed_ratio = current_speed / free_flow_speed
    if speed_ratio > 0.8:
        return 0.6
    if speed_ratio > 0.5:
        return 0.9
    return 0.7


async def weather_factor(segment: Segment, providers: SignalProviders) -> float:
    try:
        condition = await asyncio.wait_for(
            providers.weather.get_current_weather(segment.center.lat, segment.center.lon),
            timeout=providers.timeout,
        )
    except Exception as exc:
        logger.warning("[SIGNALS] weather lookup failed at %s: %r", segment.center, exc)
        return DEFAULT_WEATHER_FACTOR
    return weather_to_safety_factor(condition)


async def reports_factor(segment: Segment, providers: SignalProviders) -> float:
    since = providers.clock() - REPORT_WINDOW
    try:
        reports = await asyncio.wait_for(
            providers.reports.recent_reports(since), timeout=providers.timeout
        )
    except Exception as exc:
        logger.warning("[SIGNALS] report query failed: %r", exc)
        return DEFAULT_REPORTS_FACTOR

    nearby = sum(
        1
        for report in reports
        if report.location is not None
        and flat_distance_deg(segment.center, report.location) < REPORT_RADIUS_DEG
    )
    return reports_factor_from_count(nearby)


async def traffic_factor(segment: Segment, providers: SignalProviders) -> float:
    bbox = bounding_box(segment.center, TRAFFIC_BOX_HALF_DEG)
    try:
        flow = await asyncio.wait_for(
            providers.traffic.get_traffic_flow(bbox), timeout=providers.timeout
        )
    except Exception as exc:
        logger.warning("[SIGNALS] traffic lookup failed at %s: %r", segment.center, exc)
        return DEFAULT_TRAFFIC_FACTOR
    return traffic_factor_from_flow(flow)


def weighted_isc(breakdown: ISCBreakdown) -> float:
    isc = (
        ISC_WEIGHTS["lighting"] * breakdown.lighting
        + ISC_WEIGHTS["weather"] * breakdown.weather
        + ISC_WEIGHTS["crowd"] * breakdown.crowd
        + ISC_WEIGHTS["reports"] * breakdown.reports
        + ISC_WEIGHTS["traffic"] * breakdown.traffic
    )
    return clamp01(isc)


async def calculate_isc(
    segment: Segment,
    providers: SignalProviders,
    time_of_day: Optional[int] = None,
) -> ISCResult:
    if time_of_day is None:
        time_of_day = current_hour()

    weather, reports, traffic = await asyncio.gather(
        weather_factor(segment, providers),
        reports_factor(segment, providers),
        traffic_factor(segment, providers),
    )
    breakdown = ISCBreakdown(
        lighting=lighting_factor(time_of_day),
        weather=weather,
        crowd=crowd_factor(time_of_day),
        reports=reports,
        traffic=traffic,
    )
    return ISCResult(isc=weighted_isc(breakdown), breakdown=breakdown)


def apply_filters_to_isc(isc: float, breakdown: ISCBreakdown, filters: RouteFilters) -> float:
    """Scale a segment's ISC by every matching preference; result stays in [0, 1]."""
    adjusted = isc

    if filters.avoid_red_zones and isc < 0.4:
        adjusted *= 0.5
    if filters.min_lighting_score is not None and breakdown.lighting < filters.min_lighting_score:
        adjusted *= 0.6
    if filters.avoid_isolated_segments and breakdown.crowd < 0.5:
        adjusted *= 0.7
    if filters.avoid_recent_incidents and breakdown.reports < 0.6:
        adjusted *= 0.65
    if filters.prefer_police_zones and breakdown.reports > 0.8:
        adjusted *= 1.1
    if filters.prefer_open_spaces and breakdown.crowd > 0.7:
        adjusted *= 1.05
    if filters.require_streetlights and breakdown.lighting < 0.7:
        adjusted *= 0.4

    # Environmental
    if filters.avoid_flood_prone_areas and breakdown.weather < 0.5:
        adjusted *= 0.7
    if filters.avoid_construction and breakdown.traffic < 0.4:
        adjusted *= 0.75
    if filters.min_weather_score is not None and breakdown.weather < filters.min_weather_score:
        adjusted *= 0.65

    # Route preferences
    if filters.accessible_route_only:
        adjusted *= 0.95
    if filters.audio_friendly and breakdown.lighting > 0.8 and breakdown.crowd > 0.6:
        adjusted *= 1.05

    return clamp01(adjusted)


def passes_filter_constraints(isc: float, breakdown: ISCBreakdown, filters: RouteFilters) -> bool:
    """Hard constraints: a segment failing any of these should be excluded outright."""
    if filters.avoid_red_zones and isc < 0.3:
        return False
    if filters.require_streetlights and breakdown.lighting < 0.7:
        return False
    if filters.min_lighting_score is not None and breakdown.lighting < filters.min_lighting_score:
        return False
    if filters.min_weather_score is not None and breakdown.weather < filters.min_weather_score:
        return False
    return True


def resolve_time_of_day(filters: Optional[RouteFilters]) -> Optional[int]:
    """Hour to score at, or None for the current hour."""
    if filters is None:
        return None
    if filters.time_of_travel == "day":
        return 12
    if filters.time_of_travel == "night":
        return 22
    if filters.time_of_travel == "custom" and filters.custom_time is not None:
        return filters.custom_time
    return None
