from datetime import datetime, timedelta

import pytest
import pytz

from fulfillment_core.application.orchestrator import OrderOrchestrator
from fulfillment_core.application.pickup_verification import PickupVerificationService
from fulfillment_core.application.settlement import SettlementEngine
from fulfillment_core.domain import models  # noqa: F401  registers the tables
from fulfillment_core.domain.models import FULFILLED_STATUSES, OrderStatus, PaymentStatus, Vendor
from fulfillment_core.infrastructure.database import Base, build_engine, build_session_factory
from fulfillment_core.infrastructure.repositories.order_repository import SqlOrderRepository
from fulfillment_core.infrastructure.repositories.payout_repository import SqlPayoutRepository
from fulfillment_core.interfaces.INotificationService import INotificationService

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=pytz.utc)


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier(INotificationService):
    def __init__(self):
        self.codes = []
        self.summaries = []

    def send_pickup_code(self, phone, order_number, code, ttl_minutes):
        self.codes.append((phone, order_number, code, ttl_minutes))
        return True

    def notify_admin_settlement(self, summary):
        self.summaries.append(summary)
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(tmp_path):
    # File-backed so several threads can share it
    engine = build_engine(f"sqlite:///{tmp_path / 'fulfillment.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def order_repo(session_factory):
    return SqlOrderRepository(session_factory)


@pytest.fixture
def payout_repo(session_factory):
    return SqlPayoutRepository(session_factory)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def verification(order_repo, clock):
    return PickupVerificationService(order_repo, ttl_minutes=15, max_attempts=5, cas_retries=20, clock=clock)


@pytest.fixture
def orchestrator(order_repo, verification, notifier, clock):
    return OrderOrchestrator(order_repo, verification, notifier=notifier, clock=clock)


@pytest.fixture
def settlement(order_repo, payout_repo, notifier, clock):
    return SettlementEngine(
        order_repo, payout_repo, notifier=notifier, commission_rate="0.05", timezone="Asia/Kolkata", clock=clock
    )


@pytest.fixture
def vendors(order_repo):
    order_repo.add_vendor(Vendor(id="v1", name="Spice Garden", max_concurrent_orders=10, base_wait_minutes=10))
    order_repo.add_vendor(Vendor(id="v2", name="Pizza Corner"))
    return ["v1", "v2"]


@pytest.fixture
def make_order(orchestrator, notifier):
    """
    Places a single-item order worth `total` and walks it to `status`.
    Collected and completed orders go through a real pickup verification,
    so they need a phone for the code to reach.
    """
    def _make(vendor_id="v1", total=100, status=OrderStatus.PLACED,
              payment=PaymentStatus.COMPLETED, phone="+919800000000"):
        order = orchestrator.place_order(
            vendor_id=vendor_id,
            customer_id="c1",
            items=[{"id": "i1", "name": "Thali", "quantity": 1, "unit_price": total}],
            customer_phone=phone,
            payment_status=payment,
        )
        if status in FULFILLED_STATUSES:
            orchestrator.advance_status(order.id, OrderStatus.READY_FOR_PICKUP)
            orchestrator.verify_pickup(order.id, notifier.codes[-1][2])
            if status == OrderStatus.COMPLETED:
                orchestrator.advance_status(order.id, status)
        elif status != OrderStatus.PLACED:
            orchestrator.advance_status(order.id, status)
        return order
    return _make


@pytest.fixture
def ready_order(vendors, make_order, notifier):
    """An order at ready_for_pickup plus the code the customer was sent."""
    order = make_order(status=OrderStatus.READY_FOR_PICKUP)
    return order, notifier.codes[-1][2]
