import asyncio
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from safepath.isc import SignalProviders
from safepath.models import BoundingBox, Coordinate, ReportRecord, TrafficFlow
from safepath.reports import InMemoryReportStore


class FakeWeather:
    def __init__(self, condition: Optional[str] = "Clear", error: Optional[Exception] = None, delay: float = 0.0):
        self.condition = condition
        self.error = error
        self.delay = delay
        self.calls = 0

    async def get_current_weather(self, lat: float, lon: float) -> Optional[str]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.condition


class FakeTraffic:
    def __init__(self, flow: Optional[TrafficFlow] = None, error: Optional[Exception] = None):
        self.flow = flow
        self.error = error
        self.boxes: List[BoundingBox] = []

    async def get_traffic_flow(self, bbox: BoundingBox) -> Optional[TrafficFlow]:
        self.boxes.append(bbox)
        if self.error:
            raise self.error
        return self.flow


class FailingReportStore:
    async def recent_reports(self, since):
        raise RuntimeError("report store unavailable")

    async def add_report(self, report):
        raise RuntimeError("report store unavailable")


class FakeRouting:
    def __init__(self, routes: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.routes = routes or []
        self.error = error

    async def get_alternatives(self, origin: Coordinate, destination: Coordinate, count: int = 3):
        if self.error:
            raise self.error
        return self.routes


# 30 of 50 km/h free flow -> ratio 0.6 -> traffic factor 0.9
MODERATE_FLOW = TrafficFlow(current_speed=30, free_flow_speed=50)


def build_providers(
    condition: Optional[str] = "Clear",
    flow: Optional[TrafficFlow] = MODERATE_FLOW,
    reports: Optional[List[ReportRecord]] = None,
    weather_error: Optional[Exception] = None,
    traffic_error: Optional[Exception] = None,
    report_store=None,
    timeout: float = 1.0,
) -> SignalProviders:
    return SignalProviders(
        weather=FakeWeather(condition, error=weather_error),
        traffic=FakeTraffic(flow, error=traffic_error),
        reports=report_store if report_store is not None else InMemoryReportStore(reports),
        timeout=timeout,
    )


def tomtom_route(points, length_m: float, travel_s: float) -> Dict[str, Any]:
    return {
        "summary": {"lengthInMeters": length_m, "travelTimeInSeconds": travel_s},
        "legs": [
            {
                "summary": {"lengthInMeters": length_m, "travelTimeInSeconds": travel_s},
                "points": [{"latitude": lat, "longitude": lon} for lat, lon in points],
            }
        ],
    }


@pytest.fixture
def make_providers():
    return build_providers


@pytest.fixture
def make_tomtom_route():
    return tomtom_route


@pytest.fixture
def fakes():
    return SimpleNamespace(
        weather=FakeWeather,
        traffic=FakeTraffic,
        routing=FakeRouting,
        failing_store=FailingReportStore,
    )
