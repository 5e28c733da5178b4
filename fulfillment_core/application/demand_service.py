from datetime import timedelta

from fulfillment_core.core.clock import utcnow
from fulfillment_core.core.config import settings
from fulfillment_core.core.errors import NotFound
from fulfillment_core.domain.demand import DemandSnapshot, build_snapshot, should_alert
from fulfillment_core.domain.models import ACTIVE_STATUSES
from fulfillment_core.interfaces.IOrderRepository import IOrderRepository


def _configured(value, default):
    # 0 is a real setting; only a missing one falls back
    return default if value is None else value


class DemandService:
    """Computes a fresh snapshot on every read; nothing is cached."""

    def __init__(
        self,
        order_repo: IOrderRepository,
        window_minutes: int | None = None,
        default_capacity: int | None = None,
        default_wait_minutes: int | None = None,
        alert_threshold: int | None = None,
        clock=utcnow,
    ):
        self.order_repo = order_repo
        self.window_minutes = _configured(window_minutes, settings.DEMAND_VELOCITY_WINDOW_MINUTES)
        self.default_capacity = _configured(default_capacity, settings.DEFAULT_MAX_CAPACITY)
        self.default_wait_minutes = _configured(default_wait_minutes, settings.DEFAULT_BASE_WAIT_MINUTES)
        self.alert_threshold = _configured(alert_threshold, settings.DEMAND_ALERT_THRESHOLD)
        self.clock = clock

    def get_demand_snapshot(self, vendor_id: str) -> DemandSnapshot:
        vendor = self.order_repo.get_vendor(vendor_id)
        if vendor is None:
            raise NotFound("Vendor not found")

        now = self.clock()
        active = self.order_repo.count_active_orders(vendor_id, ACTIVE_STATUSES)
        recent = self.order_repo.recent_order_times(vendor_id, now - timedelta(minutes=self.window_minutes))

        return build_snapshot(
            vendor_id=vendor_id,
            active_orders=active,
            capacity_ceiling=_configured(vendor.max_concurrent_orders, self.default_capacity),
            recent_order_times=recent,
            now=now,
            window_minutes=self.window_minutes,
            min_wait=_configured(vendor.base_wait_minutes, self.default_wait_minutes),
        )

    def is_high_demand(self, vendor_id: str) -> bool:
        snapshot = self.get_demand_snapshot(vendor_id)
        return should_alert(snapshot.capacity_utilization, self.alert_threshold)
