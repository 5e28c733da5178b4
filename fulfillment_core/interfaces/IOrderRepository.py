from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from fulfillment_core.domain.models import Order, OrderStatus, PickupVerification, Vendor

class IOrderRepository(ABC):
    @abstractmethod
    def add_vendor(self, vendor: Vendor) -> Vendor:
        pass

    @abstractmethod
    def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        pass

    @abstractmethod
    def add_order(self, order: Order) -> Order:
        pass

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    def update_status(
        self, order_id: str, expected: OrderStatus, new: OrderStatus, now: datetime, note: str | None = None
    ) -> bool:
        """Compare-and-set on the order status. False when the status moved on."""
        pass

    # --- Pickup verification ---

    @abstractmethod
    def get_verification(self, order_id: str) -> Optional[PickupVerification]:
        pass

    @abstractmethod
    def insert_verification(self, record: PickupVerification) -> bool:
        """False when another record for the order already exists."""
        pass

    @abstractmethod
    def replace_verification(
        self, order_id: str, expected_version: int, code_hash: str,
        generated_at: datetime, expires_at: datetime, max_attempts: int,
    ) -> bool:
        pass

    @abstractmethod
    def record_failed_attempt(self, order_id: str, expected_version: int) -> bool:
        pass

    @abstractmethod
    def mark_verification_consumed(self, order_id: str, expected_version: int, now: datetime) -> bool:
        pass

    # --- Read models ---

    @abstractmethod
    def find_settleable_orders(
        self, statuses: Sequence[OrderStatus], payment_status: str, vendor_id: str | None = None
    ) -> List[Order]:
        pass

    @abstractmethod
    def count_active_orders(self, vendor_id: str, statuses: Sequence[OrderStatus]) -> int:
        pass

    @abstractmethod
    def recent_order_times(self, vendor_id: str, since: datetime) -> List[datetime]:
        pass
