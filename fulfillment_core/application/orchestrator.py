import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from fulfillment_core.core.clock import utcnow
from fulfillment_core.core.errors import InvalidState, NotFound, StateConflict, TransientStoreError, ValidationError
from fulfillment_core.domain.models import (
    FULFILLED_STATUSES,
    Order,
    OrderStatus,
    PaymentStatus,
    SettlementStatus,
    can_transition,
)
from fulfillment_core.interfaces.INotificationService import INotificationService
from fulfillment_core.interfaces.IOrderRepository import IOrderRepository
from fulfillment_core.application.pickup_verification import (
    IssuedCode,
    PickupVerificationService,
    VerificationResult,
    VerificationState,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusChange:
    order_id: str
    previous: OrderStatus
    status: OrderStatus
    # Set when this change minted a pickup code; the code itself only goes to the customer
    code_expires_at: datetime | None = None


def _money(value, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    return amount


class OrderOrchestrator:
    def __init__(
        self,
        order_repo: IOrderRepository,
        verification: PickupVerificationService,
        notifier: INotificationService | None = None,
        clock=utcnow,
    ):
        self.order_repo = order_repo
        self.verification = verification
        self.notifier = notifier  # Injected NotificationService
        self.clock = clock

    def place_order(
        self,
        vendor_id: str,
        customer_id: str,
        items: list,
        taxes=0,
        discount=0,
        customer_phone: str | None = None,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        order_id: str | None = None,
        order_number: str | None = None,
    ) -> Order:
        """Records a checked-out order. Payment capture happens upstream."""
        if self.order_repo.get_vendor(vendor_id) is None:
            raise NotFound("Vendor not found")
        if not items:
            raise ValidationError("Order must contain at least one item")

        clean_items = []
        subtotal = Decimal("0")
        for item in items:
            quantity = item.get("quantity", 1)
            if not isinstance(quantity, int) or quantity <= 0:
                raise ValidationError(f"Invalid quantity for item {item.get('name', '?')}")
            unit_price = _money(item.get("unit_price", 0), "unit_price")
            subtotal += unit_price * quantity
            clean_items.append({
                "id": str(item.get("id", "")),
                "name": item.get("name", "Unknown"),
                "quantity": quantity,
                "unit_price": str(unit_price),
            })

        taxes = _money(taxes, "taxes")
        discount = _money(discount, "discount")
        total = Order.compute_total(subtotal, taxes, discount)
        if total < 0:
            raise ValidationError("Discount cannot exceed the order value")

        now = self.clock()
        order_id = order_id or str(uuid.uuid4())
        order = Order(
            id=order_id,
            order_number=order_number or f"ORD-{order_id.replace('-', '')[-6:].upper()}",
            vendor_id=vendor_id,
            customer_id=customer_id,
            customer_phone=customer_phone,
            items=clean_items,
            subtotal=subtotal,
            taxes=taxes,
            discount=discount,
            total=total,
            status=OrderStatus.PLACED.value,
            payment_status=PaymentStatus(payment_status).value,
            settlement_status=SettlementStatus.UNSETTLED.value,
            status_history=[{"status": OrderStatus.PLACED.value, "timestamp": now.isoformat(), "note": "Order placed"}],
            created_at=now,
            updated_at=now,
        )
        self.order_repo.add_order(order)
        logger.info(f"✅ Order {order.order_number} placed for vendor {vendor_id} (total {total})")
        return order

    def advance_status(self, order_id: str, new_status, note: str | None = None) -> StatusChange:
        """Vendor-side status move. Handing the order over requires a verified pickup code."""
        try:
            new = OrderStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown order status: {new_status}")

        order = self.order_repo.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")

        current = OrderStatus(order.status)
        if not can_transition(current, new):
            raise InvalidState(f"Cannot move order from {current.value} to {new.value}")
        if new in FULFILLED_STATUSES and current not in FULFILLED_STATUSES:
            if self.verification.state(order_id) != VerificationState.CONSUMED:
                raise InvalidState("The customer's pickup code must be verified before handing over the order")

        if not self.order_repo.update_status(order_id, current, new, self.clock(), note):
            raise StateConflict("Order status changed in the meantime, please refresh")
        logger.info(f"✅ Order {order.order_number}: {current.value} -> {new.value}")

        expires_at = None
        if new == OrderStatus.READY_FOR_PICKUP:
            issued = self.verification.issue(order_id)
            self._send_code(order, issued)
            expires_at = issued.expires_at

        return StatusChange(order_id=order_id, previous=current, status=new, code_expires_at=expires_at)

    def verify_pickup(self, order_id: str, entered_code: str) -> VerificationResult:
        """Code entered at the counter. A match hands the order over."""
        result = self.verification.verify(order_id, entered_code)
        if result.success:
            self._mark_collected(order_id)
        return result

    def request_new_code(self, order_id: str, customer_id: str | None = None) -> IssuedCode:
        """Customer asks for a fresh code once the previous one expired."""
        order = self.order_repo.get_order(order_id)
        if order is None or (customer_id is not None and order.customer_id != customer_id):
            raise NotFound("Order not found")

        issued = self.verification.issue(order_id)
        self._send_code(order, issued)
        return issued

    def _mark_collected(self, order_id: str):
        # The code is already consumed at this point, so the pickup stands either way
        try:
            moved = self.order_repo.update_status(
                order_id, OrderStatus.READY_FOR_PICKUP, OrderStatus.COLLECTED, self.clock(), "Pickup code verified"
            )
        except TransientStoreError:
            logger.error(f"❌ Order {order_id} verified but not marked collected; vendor can mark it by hand")
            return
        if moved:
            logger.info(f"✅ Order {order_id}: ready_for_pickup -> collected")
        else:
            logger.warning(f"⚠️ Order {order_id} verified but no longer ready_for_pickup; status left as is")

    def _send_code(self, order: Order, issued: IssuedCode):
        if self.notifier is None or not order.customer_phone:
            logger.warning(f"⚠️ No customer channel for order {order.order_number}; code not delivered")
            return
        ttl_minutes = int(self.verification.ttl.total_seconds() // 60)
        try:
            self.notifier.send_pickup_code(order.customer_phone, order.order_number, issued.code, ttl_minutes)
        except Exception as e:
            # The code is issued either way; the customer can request a new one
            logger.error(f"❌ Pickup code for {order.order_number} not delivered: {e}")
