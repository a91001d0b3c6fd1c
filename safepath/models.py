from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float


class BoundingBox(BaseModel):
    center: Coordinate
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float


class Segment(BaseModel):
    """Directed edge between two consecutive route points."""

    start: Coordinate
    end: Coordinate
    center: Coordinate


class ISCBreakdown(BaseModel):
    lighting: float
    weather: float
    crowd: float
    reports: float
    traffic: float


class ISCResult(BaseModel):
    isc: float
    breakdown: ISCBreakdown


class ScoredSegment(BaseModel):
    index: int
    start: Coordinate
    end: Coordinate
    center: Coordinate
    isc: float
    base_isc: float
    breakdown: ISCBreakdown
    passes_constraints: bool = True


class UnsafeSegment(BaseModel):
    segment: int
    isc: float
    location: Coordinate


class TrafficFlow(BaseModel):
    current_speed: Optional[float] = None
    free_flow_speed: Optional[float] = None


class RouteCandidate(BaseModel):
    points: List[Coordinate] = Field(min_length=2)
    distance_m: float = Field(default=0.0, ge=0)
    travel_time_s: float = Field(default=0.0, ge=0)


class ProcessedRoute(BaseModel):
    model_config = ConfigDict(frozen=True)

    route_index: int
    distance: float
    duration: float
    isc: float
    optimal_cost: float
    unsafe_segments: List[UnsafeSegment]
    segments: List[ScoredSegment]
    polyline: List[Tuple[float, float]]
    constraint_violations: int = 0


class RouteSelection(BaseModel):
    shortest: ProcessedRoute
    safest: ProcessedRoute
    balanced: ProcessedRoute


class RouteFilters(BaseModel):
    """Per-request route preferences. Absent keys keep their defaults."""

    model_config = ConfigDict(extra="ignore")

    avoid_red_zones: bool = False
    min_lighting_score: Optional[float] = None
    avoid_isolated_segments: bool = False
    avoid_recent_incidents: bool = False
    prefer_police_zones: bool = False
    prefer_open_spaces: bool = False
    require_streetlights: bool = False
    avoid_flood_prone_areas: bool = False
    avoid_construction: bool = False
    min_weather_score: Optional[float] = None
    accessible_route_only: bool = False
    audio_friendly: bool = False

    weight_distance: Optional[float] = Field(default=None, ge=0)
    weight_safety: Optional[float] = Field(default=None, ge=0)
    weight_speed: Optional[float] = Field(default=None, ge=0)

    time_of_travel: Literal["now", "day", "night", "custom"] = "now"
    custom_time: Optional[int] = Field(default=None, ge=0, le=23)

    @field_validator("min_lighting_score", "min_weather_score")
    @classmethod
    def _clamp_threshold(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        return max(0.0, min(1.0, value))

    @property
    def has_custom_weights(self) -> bool:
        # 0 means the slider is at its minimum; treat it as unset
        return any(
            bool(w)
            for w in (self.weight_distance, self.weight_safety, self.weight_speed)
        )


class RouteRequest(BaseModel):
    origin: Optional[Coordinate] = None
    destination: Optional[Coordinate] = None
    alpha: float = Field(
        default=0.7,
        description="Safety preference in [0, 1]; out-of-range values are clamped.",
    )
    filters: Optional[RouteFilters] = None

    @field_validator("alpha")
    @classmethod
    def _clamp_alpha(cls, value: float) -> float:
        return max(0.0, min(1.0, value))


class RouteOption(BaseModel):
    name: str
    type: Literal["shortest", "safest", "balanced"]
    route_index: int
    polyline: List[Tuple[float, float]]
    distance: float
    distance_km: float
    duration: float
    eta: int
    isc: float
    safety_score: float
    unsafe_segments: List[UnsafeSegment]
    segments: List[ScoredSegment]
    constraint_violations: int = 0


class RouteSummaryItem(BaseModel):
    distance_km: float
    safety_score: float


class RoutesResponse(BaseModel):
    success: bool = True
    routes: Dict[str, RouteOption]
    route: RouteOption
    summary: Dict[str, RouteSummaryItem]


ReportType = Literal[
    "incident",
    "accident",
    "hazard",
    "suspicious",
    "broken lighting",
    "theft",
    "poor crowd density",
    "road condition",
    "urban desertion",
    "harassment",
    "other",
]


class ReportCreate(BaseModel):
    type: ReportType = "incident"
    description: str = ""
    location: Coordinate


class ReportRecord(BaseModel):
    id: Optional[str] = None
    type: str
    description: str = ""
    location: Optional[Coordinate] = None
    timestamp: datetime


class ReportsResponse(BaseModel):
    reports: List[ReportRecord]
