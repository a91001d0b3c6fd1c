"""
Route cost model (lower is better).

Simple mode:    cost = alpha * (1 - safety) + (1 - alpha) * normalized_distance
Weighted mode:  cost = wD * normalized_distance + wS * (1 - safety) + wSp * (1 - speed_factor)

Distance is normalized against a 10 km walking route; anything longer is
maximally costly on the distance axis.
"""

from typing import Dict, Optional

from .models import RouteFilters

MAX_ROUTE_DISTANCE_M = 10000.0

DEFAULT_WEIGHT_DISTANCE = 0.3
DEFAULT_WEIGHT_SAFETY = 0.5
DEFAULT_WEIGHT_SPEED = 0.2

# Base speed is assumed optimal until a real speed-quality signal exists
SPEED_FACTOR = 1.0


def normalize_distance(distance_m: float) -> float:
    return min(1.0, distance_m / MAX_ROUTE_DISTANCE_M)


def normalize_weights(filters: RouteFilters) -> Dict[str, float]:
    weights = {
        "weight_distance": filters.weight_distance or DEFAULT_WEIGHT_DISTANCE,
        "weight_safety": filters.weight_safety or DEFAULT_WEIGHT_SAFETY,
        "weight_speed": filters.weight_speed or DEFAULT_WEIGHT_SPEED,
    }
    total = sum(weights.values())
    return {name: w / total for name, w in weights.items()}


def calculate_optimal_cost(
    safety_score: float,
    distance_m: float,
    alpha: float,
    custom_weights: Optional[RouteFilters] = None,
) -> float:
    normalized_distance = normalize_distance(distance_m)

    if custom_weights is not None and custom_weights.has_custom_weights:
        weights = normalize_weights(custom_weights)
        return (
            weights["weight_distance"] * normalized_distance
            + weights["weight_safety"] * (1 - safety_score)
            + weights["weight_speed"] * (1 - SPEED_FACTOR)
        )

    return alpha * (1 - safety_score) + (1 - alpha) * normalized_distance
