import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from safepath.config import (
    APP_HOST,
    APP_PORT,
    CORS_ORIGINS,
    LOG_LEVEL,
    OPENWEATHER_API_KEY,
    ROUTE_ALTERNATIVES,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
    TOMTOM_API_KEY,
)
from safepath.errors import NoProcessableRoutes, NoRouteFound, ProviderError
from safepath.isc import SignalProviders
from safepath.models import (
    Coordinate,
    ProcessedRoute,
    ReportCreate,
    ReportRecord,
    ReportsResponse,
    RouteFilters,
    RouteOption,
    RouteRequest,
    RouteSelection,
    RoutesResponse,
    RouteSummaryItem,
)
from safepath.providers import (
    OpenWeatherProvider,
    RoutingSource,
    TomTomRoutingProvider,
    TomTomTrafficProvider,
)
from safepath.reports import InMemoryReportStore, ReportStore, SupabaseReportStore
from safepath.route_processor import process_routes
from safepath.selector import select_routes

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SafePath Backend", version="0.1.0")

# CORS: allow frontend dev server on localhost:5173, adjust via CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY:
    _report_store: ReportStore = SupabaseReportStore()
else:
    logger.warning("[REPORTS] Supabase not configured, keeping reports in memory")
    _report_store = InMemoryReportStore()


def get_report_store() -> ReportStore:
    return _report_store


def get_routing_provider() -> RoutingSource:
    return TomTomRoutingProvider()


def get_signal_providers(reports: ReportStore = Depends(get_report_store)) -> SignalProviders:
    return SignalProviders(
        weather=OpenWeatherProvider(),
        traffic=TomTomTrafficProvider(),
        reports=reports,
    )


ROUTE_SLOTS = [
    ("routeA", "shortest", "Route A (Shortest)"),
    ("routeB", "safest", "Route B (Safest)"),
    ("routeC", "balanced", "Route C (Balanced)"),
]


async def plan_safe_routes(
    origin: Coordinate,
    destination: Coordinate,
    alpha: float,
    filters: Optional[RouteFilters],
    routing: RoutingSource,
    providers: SignalProviders,
) -> RouteSelection:
    """Fetch alternatives, score every candidate and label the three picks."""
    raw_routes = await routing.get_alternatives(origin, destination, ROUTE_ALTERNATIVES)
    if not raw_routes:
        raise NoRouteFound(
            "Unable to find a route between the specified locations. "
            "Please check your origin and destination coordinates."
        )
    processed = await process_routes(raw_routes, alpha, providers, filters)
    return select_routes(processed)


def _to_option(route: ProcessedRoute, kind: str, name: str) -> RouteOption:
    return RouteOption(
        name=name,
        type=kind,
        route_index=route.route_index,
        polyline=route.polyline,
        distance=route.distance,
        distance_km=round(route.distance / 1000, 2),
        duration=route.duration,
        eta=round(route.duration / 60),
        isc=route.isc,
        safety_score=round(route.isc * 100, 1),
        unsafe_segments=route.unsafe_segments,
        segments=route.segments,
        constraint_violations=route.constraint_violations,
    )


@app.post("/api/route/safest", response_model=RoutesResponse)
async def find_safest_route(
    payload: RouteRequest,
    routing: RoutingSource = Depends(get_routing_provider),
    providers: SignalProviders = Depends(get_signal_providers),
) -> RoutesResponse:
    """
    Safety-aware walking routes.

    Returns three labeled options:
    - Route A: shortest distance
    - Route B: highest average ISC
    - Route C: lowest combined safety/distance cost
    """
    if not payload.origin or not payload.destination:
        raise HTTPException(status_code=400, detail="Origin and destination are required")

    logger.info(
        "[API_REQUEST] Origin: %s, Destination: %s, alpha=%.2f",
        payload.origin,
        payload.destination,
        payload.alpha,
    )

    try:
        selection = await plan_safe_routes(
            payload.origin,
            payload.destination,
            payload.alpha,
            payload.filters,
            routing,
            providers,
        )
    except NoRouteFound as exc:
        raise HTTPException(status_code=404, detail=f"No routes found: {exc}")
    except ProviderError as exc:
        logger.error("[ROUTING] provider failure: %s", exc)
        raise HTTPException(status_code=502, detail=f"No route found: {exc}")
    except NoProcessableRoutes as exc:
        logger.error("[ROUTING] %s", exc)
        raise HTTPException(status_code=500, detail=f"Failed to process routes: {exc}")

    picks = {
        "shortest": selection.shortest,
        "safest": selection.safest,
        "balanced": selection.balanced,
    }
    routes = {slot: _to_option(picks[kind], kind, name) for slot, kind, name in ROUTE_SLOTS}
    summary = {
        kind: RouteSummaryItem(
            distance_km=routes[slot].distance_km,
            safety_score=routes[slot].safety_score,
        )
        for slot, kind, _ in ROUTE_SLOTS
    }

    return RoutesResponse(routes=routes, route=routes["routeC"], summary=summary)


@app.post("/api/reports", response_model=ReportRecord)
async def submit_report(
    payload: ReportCreate,
    store: ReportStore = Depends(get_report_store),
) -> ReportRecord:
    try:
        return await store.add_report(payload)
    except ProviderError as exc:
        logger.error("[REPORTS] %s", exc)
        raise HTTPException(status_code=502, detail=f"Failed to store report: {exc}")


@app.get("/api/reports", response_model=ReportsResponse)
async def list_recent_reports(
    minutes: int = Query(default=30, ge=1, le=1440),
    store: ReportStore = Depends(get_report_store),
) -> ReportsResponse:
    since = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    try:
        reports: List[ReportRecord] = await store.recent_reports(since)
    except ProviderError as exc:
        logger.error("[REPORTS] %s", exc)
        raise HTTPException(status_code=502, detail=f"Failed to load reports: {exc}")
    return ReportsResponse(reports=reports)


@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "providers": {
            "routing": bool(TOMTOM_API_KEY),
            "traffic": bool(TOMTOM_API_KEY),
            "weather": bool(OPENWEATHER_API_KEY),
            "reports": "supabase" if isinstance(_report_store, SupabaseReportStore) else "memory",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("safepath.main:app", host=APP_HOST, port=APP_PORT)
