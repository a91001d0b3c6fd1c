import asyncio
from datetime import datetime, timezone

import pytest

from safepath import route_processor
from safepath.errors import NoProcessableRoutes
from safepath.geo import distance
from safepath.models import Coordinate, ReportRecord, RouteCandidate, RouteFilters
from safepath.route_processor import (
    FALLBACK_ISC,
    bounded_gather,
    extract_candidate,
    extract_points,
    extract_summary,
    process_route,
    process_routes,
    sample_segment_indices,
)

WALK = [(40.7128, -74.0060), (40.7140, -74.0050), (40.7152, -74.0040)]


def _candidate(points=WALK, distance=1200.0, duration=900.0) -> RouteCandidate:
    return RouteCandidate(
        points=[Coordinate(lat=lat, lon=lon) for lat, lon in points],
        distance_m=distance,
        travel_time_s=duration,
    )


def test_sampling_500_points():
    indices = sample_segment_indices(500)
    assert len(indices) <= 50, f"Expected at most 50 samples, got {len(indices)}"
    assert indices[-1] == 498, "Final segment must always be sampled"
    assert indices[:-1] == list(range(0, 490, 10)), "Stride should be 500 // 50 = 10"


def test_sampling_small_routes_covers_every_segment():
    assert sample_segment_indices(10) == list(range(9))
    assert sample_segment_indices(2) == [0]
    assert sample_segment_indices(1) == []
    assert sample_segment_indices(51) == list(range(50))


def test_sampling_appends_final_segment_off_stride():
    # 120 points: 120 // 50 = 2 would pick 60 segments, so the stride widens to 3
    indices = sample_segment_indices(120)
    assert indices == list(range(0, 119, 3)) + [118]
    assert len(indices) <= 50

    assert sample_segment_indices(75, max_segments=20) == list(range(0, 74, 4)) + [73]


def test_sampling_never_exceeds_cap():
    for count in range(2, 2000, 7):
        indices = sample_segment_indices(count)
        assert len(indices) <= 50, f"{count} points sampled {len(indices)} segments"
        assert indices[-1] == count - 2
        assert indices == sorted(set(indices))


def test_extract_points_tomtom_legs(make_tomtom_route):
    route = make_tomtom_route(WALK, 1200, 900)
    points = extract_points(route)
    assert [(p.lat, p.lon) for p in points] == WALK
    assert extract_summary(route) == (1200.0, 900.0)


def test_extract_points_concatenates_all_legs():
    route = {
        "legs": [
            {"points": [{"latitude": 1, "longitude": 1}, {"latitude": 2, "longitude": 2}],
             "summary": {"lengthInMeters": 100, "travelTimeInSeconds": 60}},
            {"points": [{"latitude": 2, "longitude": 2}, {"latitude": 3, "longitude": 3}],
             "summary": {"lengthInMeters": 150, "travelTimeInSeconds": 90}},
        ]
    }
    assert len(extract_points(route)) == 4, "No points may be dropped when joining legs"
    assert extract_summary(route) == (250.0, 150.0)


def test_extract_points_alternate_shapes():
    sections = {"sections": [{"points": [[1, 2], [3, 4]]}, {"points": [{"lat": 5, "lng": 6}]}]}
    assert [(p.lat, p.lon) for p in extract_points(sections)] == [(1, 2), (3, 4), (5, 6)]

    single_leg = {"legs": {"points": [{"lat": 1, "lon": 2}, {"lat": 3, "lon": 4}]}}
    assert len(extract_points(single_leg)) == 2

    encoded = {"geometry": "_p~iF~ps|U_ulLnnqC_mqNvxq`@", "summary": {"distance": 500, "duration": 400}}
    assert len(extract_points(encoded)) == 3
    assert extract_summary(encoded) == (500.0, 400.0)

    geojson = {"geometry": {"type": "LineString", "coordinates": [[-74.0, 40.0], [-74.1, 40.1]]}}
    assert extract_points(geojson)[0] == Coordinate(lat=40.0, lon=-74.0)


def test_missing_summary_distance_is_measured_from_points():
    candidate = extract_candidate({"points": [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0]]})
    expected = distance(Coordinate(lat=0.0, lon=0.0), Coordinate(lat=1.0, lon=0.0)) + distance(
        Coordinate(lat=1.0, lon=0.0), Coordinate(lat=1.0, lon=1.0)
    )
    assert candidate.distance_m == pytest.approx(expected)
    assert 222000 < candidate.distance_m < 222700, "Two ~111 km hops"

    with_summary = extract_candidate({"points": [[0.0, 0.0], [1.0, 0.0]], "summary": {"distance": 42}})
    assert with_summary.distance_m == 42.0


def test_extract_candidate_rejects_unusable_routes():
    assert extract_candidate({"legs": [{"points": []}]}) is None
    assert extract_candidate({"legs": [{"points": [{"latitude": 1, "longitude": 1}]}]}) is None
    assert extract_candidate({"points": [[1, 1], "garbage"]}) is None
    assert extract_candidate({}) is None
    assert extract_candidate(None) is None


def test_bounded_gather_limits_concurrency_and_keeps_order():
    in_flight = 0
    peak = 0

    async def work(i):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005 * (10 - i))
        in_flight -= 1
        return i * i

    results = asyncio.run(bounded_gather(list(range(10)), work, limit=3))
    assert results == [i * i for i in range(10)]
    assert peak == 3, f"Expected at most 3 concurrent tasks, saw {peak}"


def test_process_route_scores_sampled_segments(make_providers):
    route = asyncio.run(process_route(0, _candidate(), 0.7, make_providers(), time_of_day=12))
    expected_isc = 0.2 + 0.2 + 0.15 * 0.7 + 0.3 + 0.15 * 0.9

    assert [s.index for s in route.segments] == [0, 1]
    assert route.isc == pytest.approx(expected_isc)
    assert route.unsafe_segments == []
    assert route.polyline == WALK, "Polyline keeps every point, not just the sampled ones"
    assert route.optimal_cost == pytest.approx(0.7 * (1 - expected_isc) + 0.3 * 0.12)
    assert route.constraint_violations == 0


def test_process_route_flags_unsafe_segments(make_providers):
    spot = (51.5, -0.12)
    points = [spot, (51.50001, -0.12), (51.50002, -0.12)]
    now = datetime.now(timezone.utc)
    reports = [
        ReportRecord(type="theft", location=Coordinate(lat=spot[0], lon=spot[1]), timestamp=now),
        ReportRecord(type="harassment", location=Coordinate(lat=spot[0], lon=spot[1]), timestamp=now),
    ]
    providers = make_providers(condition="Thunderstorm", reports=reports)

    route = asyncio.run(process_route(1, _candidate(points), 0.7, providers, time_of_day=23))

    # 0.2*0.6 + 0.2*0.3 + 0.15*0.5 + 0.3*0.4 + 0.15*0.9
    assert route.isc == pytest.approx(0.51)
    providers.traffic.flow = providers.traffic.flow.model_copy(update={"current_speed": 45})
    route = asyncio.run(process_route(1, _candidate(points), 0.7, providers, time_of_day=23))
    assert route.isc == pytest.approx(0.465)
    assert [u.segment for u in route.unsafe_segments] == [0, 1]
    assert route.unsafe_segments[0].location == route.segments[0].center


def test_segment_failure_falls_back_to_neutral_score(make_providers, monkeypatch):
    async def boom(*args, **kwargs):
        raise RuntimeError("scoring exploded")

    monkeypatch.setattr(route_processor, "calculate_isc", boom)
    route = asyncio.run(process_route(0, _candidate(), 0.7, make_providers(), time_of_day=12))

    assert all(s.isc == 0.5 for s in route.segments)
    assert all(s.breakdown == FALLBACK_ISC.breakdown for s in route.segments)
    assert route.isc == 0.5
    assert route.unsafe_segments == []


def test_process_route_applies_filters(make_providers):
    filters = RouteFilters(require_streetlights=True)
    route = asyncio.run(process_route(0, _candidate(), 0.7, make_providers(), filters, time_of_day=23))

    for segment in route.segments:
        assert segment.isc == pytest.approx(segment.base_isc * 0.4)
        assert segment.passes_constraints is False
    assert route.constraint_violations == len(route.segments)


def test_process_routes_keeps_order_and_skips_invalid(make_providers, make_tomtom_route):
    raw = [
        make_tomtom_route(WALK, 1200, 900),
        {"legs": [{"points": []}]},
        make_tomtom_route(list(reversed(WALK)), 1300, 950),
    ]
    routes = asyncio.run(process_routes(raw, 0.7, make_providers(), RouteFilters(time_of_travel="day")))
    assert [r.route_index for r in routes] == [0, 2]
    assert [r.distance for r in routes] == [1200, 1300]


def test_process_routes_with_no_valid_candidates_fails(make_providers):
    with pytest.raises(NoProcessableRoutes):
        asyncio.run(process_routes([{"legs": []}, {}], 0.7, make_providers()))
