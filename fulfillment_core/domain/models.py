import enum
from decimal import Decimal

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String
from sqlalchemy.sql import func

from fulfillment_core.infrastructure.database import Base


class OrderStatus(str, enum.Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    COLLECTED = "collected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    FAILED = "failed"


class SettlementStatus(str, enum.Enum):
    UNSETTLED = "unsettled"
    SETTLED = "settled"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Forward-only lifecycle. CANCELLED sits outside the ranking.
STATUS_RANK = {
    OrderStatus.PLACED: 0,
    OrderStatus.CONFIRMED: 1,
    OrderStatus.PREPARING: 2,
    OrderStatus.READY_FOR_PICKUP: 3,
    OrderStatus.COLLECTED: 4,
    OrderStatus.COMPLETED: 5,
}
TERMINAL_STATUSES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
# Orders still occupying the kitchen
ACTIVE_STATUSES = (
    OrderStatus.PLACED,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
)
FULFILLED_STATUSES = (OrderStatus.COLLECTED, OrderStatus.COMPLETED)


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if new == OrderStatus.CANCELLED:
        return True
    return STATUS_RANK[new] > STATUS_RANK[current]


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    # Demand estimator inputs; None falls back to configured defaults
    max_concurrent_orders = Column(Integer, nullable=True)
    base_wait_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True)
    order_number = Column(String, unique=True, index=True, nullable=False)
    vendor_id = Column(String, ForeignKey("vendors.id"), index=True, nullable=False)
    customer_id = Column(String, index=True, nullable=False)
    customer_phone = Column(String, nullable=True)

    # [{"id", "name", "quantity", "unit_price"}]
    items = Column(JSON, nullable=False, default=list)

    subtotal = Column(Numeric(12, 2), nullable=False)
    taxes = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)

    status = Column(String, nullable=False, default=OrderStatus.PLACED.value, index=True)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value, index=True)
    status_history = Column(JSON, nullable=False, default=list)

    # Written once by the settlement engine, never cleared
    settlement_status = Column(
        String, nullable=False, default=SettlementStatus.UNSETTLED.value, index=True
    )
    settlement_batch_id = Column(String, ForeignKey("payout_batches.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    @staticmethod
    def compute_total(subtotal, taxes, discount) -> Decimal:
        return Decimal(subtotal) + Decimal(taxes) - Decimal(discount)


class PickupVerification(Base):
    __tablename__ = "pickup_verifications"

    order_id = Column(String, ForeignKey("orders.id"), primary_key=True)
    code_hash = Column(String(64), nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False)
    consumed = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    # Bumped on every write; all updates compare-and-set against it
    version = Column(Integer, nullable=False, default=1)


class PayoutBatch(Base):
    __tablename__ = "payout_batches"

    id = Column(String, primary_key=True)
    batch_number = Column(String, unique=True, nullable=False)
    vendor_id = Column(String, ForeignKey("vendors.id"), index=True, nullable=False)

    gross_amount = Column(Numeric(14, 2), nullable=False)
    commission_rate = Column(Numeric(5, 4), nullable=False)
    commission_amount = Column(Numeric(14, 2), nullable=False)
    amount = Column(Integer, nullable=False)  # net payable, whole currency units

    status = Column(String, nullable=False, default=PayoutStatus.PENDING.value, index=True)
    order_ids = Column(JSON, nullable=False)
    order_count = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    created_by = Column(String, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    reference = Column(String, nullable=True)  # bank transfer reference once approved
    notes = Column(String, nullable=True)
