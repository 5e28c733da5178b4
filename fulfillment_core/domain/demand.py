"""
Demand estimator.

Turns live kitchen load into a capacity utilisation, a composite demand
score, a discrete level and an estimated wait. Everything here is a pure
function of its inputs; nothing is cached between calls.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable


class DemandLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


@dataclass(frozen=True)
class DemandSnapshot:
    vendor_id: str
    active_orders: int
    order_velocity: float  # orders per minute over the velocity window
    capacity_utilization: int  # percent
    demand_score: float
    demand_level: DemandLevel
    estimated_wait_minutes: int
    computed_at: datetime


def round_half_up(value) -> int:
    """Round .5 away from zero instead of to the nearest even integer."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_capacity_utilization(active_orders: int, capacity_ceiling: int) -> int:
    return round_half_up(active_orders / max(capacity_ceiling, 1) * 100)


def calculate_order_velocity(recent_orders: int, window_minutes: float) -> float:
    if window_minutes <= 0:
        return 0.0
    return recent_orders / window_minutes


def calculate_demand_score(capacity_utilization: float, order_velocity: float) -> float:
    # Capacity contributes up to 60 points, velocity up to 40
    capacity_score = min(capacity_utilization, 100) * 0.6
    velocity_score = min(order_velocity * 10, 40)
    return capacity_score + velocity_score


def get_demand_level(demand_score: float) -> DemandLevel:
    if demand_score < 25:
        return DemandLevel.LOW
    if demand_score < 50:
        return DemandLevel.MEDIUM
    if demand_score < 75:
        return DemandLevel.HIGH
    return DemandLevel.VERY_HIGH


def calculate_wait_time(min_wait: float, demand_score: float) -> int:
    """
    Wait grows quadratically with demand between the baseline preparation
    time and max(min_wait + 20, 2 * min_wait).
    """
    max_wait = max(min_wait + 20, min_wait * 2)
    busy_factor = (min(demand_score, 100) / 100) ** 2
    return round_half_up(min_wait + (max_wait - min_wait) * busy_factor)


def should_alert(capacity_utilization: float, threshold: float = 80) -> bool:
    return capacity_utilization >= threshold


def build_snapshot(
    vendor_id: str,
    active_orders: int,
    capacity_ceiling: int,
    recent_order_times: Iterable[datetime],
    now: datetime,
    window_minutes: int,
    min_wait: int,
) -> DemandSnapshot:
    window_start = now - timedelta(minutes=window_minutes)
    recent = sum(1 for t in recent_order_times if window_start <= t <= now)

    velocity = calculate_order_velocity(recent, window_minutes)
    utilization = calculate_capacity_utilization(active_orders, capacity_ceiling)
    score = calculate_demand_score(utilization, velocity)

    return DemandSnapshot(
        vendor_id=vendor_id,
        active_orders=active_orders,
        order_velocity=round(velocity, 2),
        capacity_utilization=utilization,
        demand_score=round(score, 2),
        demand_level=get_demand_level(score),
        estimated_wait_minutes=calculate_wait_time(min_wait, score),
        computed_at=now,
    )
