"""
External data sources consumed by the scoring engine.

Routing and traffic come from TomTom, weather from OpenWeatherMap. Every
call opens its own httpx client with an explicit timeout; failures are
raised as ProviderError so callers can decide whether to fall back.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .config import (
    OPENWEATHER_API_KEY,
    OPENWEATHER_BASE_URL,
    PROVIDER_TIMEOUT_S,
    TOMTOM_API_KEY,
    TOMTOM_BASE_URL,
)
from .errors import ProviderError
from .models import BoundingBox, Coordinate, TrafficFlow

logger = logging.getLogger(__name__)


class RoutingSource(Protocol):
    async def get_alternatives(
        self, origin: Coordinate, destination: Coordinate, count: int
    ) -> List[Dict[str, Any]]: ...


class WeatherSource(Protocol):
    async def get_current_weather(self, lat: float, lon: float) -> Optional[str]: ...


class TrafficSource(Protocol):
    async def get_traffic_flow(self, bbox: BoundingBox) -> Optional[TrafficFlow]: ...


def _error_detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text
    if isinstance(data, dict):
        error = data.get("error") or data.get("detailedError") or data.get("message")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("description") or error)
        if error:
            return str(error)
    return resp.text


class TomTomRoutingProvider:
    def __init__(
        self,
        api_key: str = TOMTOM_API_KEY,
        base_url: str = TOMTOM_BASE_URL,
        timeout: float = PROVIDER_TIMEOUT_S,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    async def get_alternatives(
        self, origin: Coordinate, destination: Coordinate, count: int = 3
    ) -> List[Dict[str, Any]]:
        """
        Call TomTom Calculate Route for a walking route plus alternatives.
        Returns the raw `routes` list; shapes are normalized by the route processor.
        """
        if not self.api_key:
            raise ProviderError("TOMTOM_API_KEY not configured")

        locations = f"{origin.lat},{origin.lon}:{destination.lat},{destination.lon}"
        url = f"{self.base_url}/routing/1/calculateRoute/{locations}/json"
        params = {
            "key": self.api_key,
            "travelMode": "pedestrian",
            "maxAlternatives": max(0, count - 1),
            "routeRepresentation": "polyline",
        }

        logger.info("[ROUTING] %s -> %s (alternatives=%d)", origin, destination, count)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Routing request failed: {exc}") from exc

        if resp.status_code != 200:
            raise ProviderError(f"Routing failed ({resp.status_code}): {_error_detail(resp)}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError("Routing provider returned invalid JSON") from exc

        routes = data.get("routes") or []
        logger.info("[ROUTING] provider returned %d route(s)", len(routes))
        return routes


class TomTomTrafficProvider:
    def __init__(
        self,
        api_key: str = TOMTOM_API_KEY,
        base_url: str = TOMTOM_BASE_URL,
        timeout: float = PROVIDER_TIMEOUT_S,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    async def get_traffic_flow(self, bbox: BoundingBox) -> Optional[TrafficFlow]:
        """Flow segment data for the road nearest the bbox center, or None."""
        if not self.api_key:
            raise ProviderError("TOMTOM_API_KEY not configured")

        url = f"{self.base_url}/traffic/services/4/flowSegmentData/absolute/10/json"
        params = {
            "key": self.api_key,
            "point": f"{bbox.center.lat},{bbox.center.lon}",
            "unit": "KMPH",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Traffic request failed: {exc}") from exc

        if resp.status_code != 200:
            raise ProviderError(f"Traffic flow failed ({resp.status_code}): {_error_detail(resp)}")

        flow = resp.json().get("flowSegmentData")
        if not flow:
            return None
        return TrafficFlow(
            current_speed=flow.get("currentSpeed"),
            free_flow_speed=flow.get("freeFlowSpeed"),
        )


class OpenWeatherProvider:
    def __init__(
        self,
        api_key: str = OPENWEATHER_API_KEY,
        base_url: str = OPENWEATHER_BASE_URL,
        timeout: float = PROVIDER_TIMEOUT_S,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    async def get_current_weather(self, lat: float, lon: float) -> Optional[str]:
        """Current condition group at a point, e.g. 'Clear', 'Rain', 'Fog'."""
        if not self.api_key:
            raise ProviderError("OPENWEATHER_API_KEY not configured")

        url = f"{self.base_url}/data/2.5/weather"
        params = {"lat": lat, "lon": lon, "appid": self.api_key}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Weather request failed: {exc}") from exc

        if resp.status_code != 200:
            raise ProviderError(f"Weather lookup failed ({resp.status_code}): {_error_detail(resp)}")

        conditions = resp.json().get("weather") or []
        if not conditions:
            return None
        return conditions[0].get("main")


# Condition group -> pedestrian safety factor (1.0 = safest)
WEATHER_SAFETY_FACTORS = {
    "clear": 1.0,
    "clouds": 0.9,
    "drizzle": 0.75,
    "rain": 0.6,
    "snow": 0.5,
    "thunderstorm": 0.3,
    "mist": 0.6,
    "fog": 0.6,
    "haze": 0.6,
    "smoke": 0.6,
    "dust": 0.6,
    "sand": 0.6,
    "ash": 0.4,
    "squall": 0.2,
    "tornado": 0.2,
}
UNKNOWN_WEATHER_FACTOR = 0.7


def weather_to_safety_factor(condition: Optional[str]) -> float:
    if not condition:
        return UNKNOWN_WEATHER_FACTOR
    return WEATHER_SAFETY_FACTORS.get(condition.strip().lower(), UNKNOWN_WEATHER_FACTOR)
