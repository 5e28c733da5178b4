from datetime import timedelta
from decimal import Decimal

import pytest

from fulfillment_core.application.orchestrator import OrderOrchestrator
from fulfillment_core.core.errors import AlreadyActive, InvalidState, NotFound, ValidationError
from fulfillment_core.domain.models import OrderStatus, PaymentStatus
from fulfillment_core.interfaces.INotificationService import INotificationService


def test_place_order_enforces_total(orchestrator, order_repo, vendors):
    order = orchestrator.place_order(
        vendor_id="v1",
        customer_id="c1",
        items=[
            {"id": "1", "name": "Butter Chicken", "quantity": 2, "unit_price": 100},
            {"id": "2", "name": "Garlic Naan", "quantity": 1, "unit_price": "50"},
        ],
        taxes="12.50",
        discount=20,
    )

    stored = order_repo.get_order(order.id)
    assert stored.subtotal == Decimal("250")
    assert stored.total == Decimal("242.50")
    assert stored.status == OrderStatus.PLACED.value
    assert stored.payment_status == PaymentStatus.PENDING.value
    assert stored.settlement_status == "unsettled"
    assert stored.order_number.startswith("ORD-")
    assert [h["status"] for h in stored.status_history] == ["placed"]


@pytest.mark.parametrize("items,discount", [
    ([], 0),
    ([{"name": "Naan", "quantity": 0, "unit_price": 10}], 0),
    ([{"name": "Naan", "quantity": 1, "unit_price": -5}], 0),
    ([{"name": "Naan", "quantity": 1, "unit_price": "abc"}], 0),
    ([{"name": "Naan", "quantity": 1, "unit_price": 10}], 11),
])
def test_place_order_rejects_bad_input(orchestrator, vendors, items, discount):
    with pytest.raises(ValidationError):
        orchestrator.place_order(vendor_id="v1", customer_id="c1", items=items, discount=discount)


def test_ready_for_pickup_issues_and_sends_code(orchestrator, order_repo, notifier, clock, vendors, make_order):
    order = make_order(status=OrderStatus.PREPARING)

    change = orchestrator.advance_status(order.id, "ready_for_pickup", note="Packed")

    assert change.previous == OrderStatus.PREPARING
    assert change.status == OrderStatus.READY_FOR_PICKUP
    assert change.code_expires_at == clock.now + timedelta(minutes=15)
    assert "code" not in vars(change)
    [(phone, order_number, code, ttl)] = notifier.codes
    assert (phone, order_number, ttl) == ("+919800000000", order.order_number, 15)

    stored = order_repo.get_order(order.id)
    assert [h["status"] for h in stored.status_history] == ["placed", "preparing", "ready_for_pickup"]
    assert stored.status_history[-1]["note"] == "Packed"


def test_other_transitions_do_not_issue(orchestrator, order_repo, vendors, make_order):
    order = make_order()
    change = orchestrator.advance_status(order.id, OrderStatus.CONFIRMED)
    assert change.code_expires_at is None
    assert order_repo.get_verification(order.id) is None


def test_no_phone_means_no_message(orchestrator, notifier, vendors, make_order):
    make_order(status=OrderStatus.READY_FOR_PICKUP, phone=None)
    assert notifier.codes == []


@pytest.mark.parametrize("start,target", [
    (OrderStatus.PREPARING, OrderStatus.CONFIRMED),
    (OrderStatus.PREPARING, OrderStatus.PREPARING),
    (OrderStatus.COMPLETED, OrderStatus.CANCELLED),
    (OrderStatus.CANCELLED, OrderStatus.CONFIRMED),
])
def test_status_never_moves_backwards(orchestrator, vendors, make_order, start, target):
    order = make_order(status=start)
    with pytest.raises(InvalidState):
        orchestrator.advance_status(order.id, target)


def test_cancel_from_any_open_status(orchestrator, order_repo, vendors, make_order):
    order = make_order(status=OrderStatus.PREPARING)
    orchestrator.advance_status(order.id, OrderStatus.CANCELLED)
    assert order_repo.get_order(order.id).status == OrderStatus.CANCELLED.value


def test_unknown_status_and_order(orchestrator, vendors, make_order):
    order = make_order()
    with pytest.raises(ValidationError):
        orchestrator.advance_status(order.id, "teleported")
    with pytest.raises(NotFound):
        orchestrator.advance_status("missing", OrderStatus.CONFIRMED)


def test_stale_status_write_is_rejected(order_repo, clock, vendors, make_order):
    order = make_order(status=OrderStatus.CONFIRMED)
    assert order_repo.update_status(order.id, OrderStatus.PLACED, OrderStatus.PREPARING, clock.now) is False
    assert order_repo.get_order(order.id).status == OrderStatus.CONFIRMED.value


def test_request_new_code(orchestrator, notifier, clock, vendors, make_order):
    order = make_order(status=OrderStatus.READY_FOR_PICKUP)
    with pytest.raises(AlreadyActive):
        orchestrator.request_new_code(order.id)

    clock.advance(minutes=16)
    issued = orchestrator.request_new_code(order.id)

    assert len(notifier.codes) == 2
    assert notifier.codes[-1][2] == issued.code


def test_request_new_code_is_scoped_to_the_customer(orchestrator, clock, vendors, make_order):
    order = make_order(status=OrderStatus.READY_FOR_PICKUP)
    clock.advance(minutes=16)

    with pytest.raises(NotFound):
        orchestrator.request_new_code(order.id, customer_id="someone-else")
    assert orchestrator.request_new_code(order.id, customer_id="c1").code


def test_unknown_vendor_is_refused(orchestrator, order_repo, vendors):
    with pytest.raises(NotFound) as exc:
        orchestrator.place_order(
            vendor_id="ghost",
            customer_id="c1",
            items=[{"name": "Naan", "quantity": 1, "unit_price": 10}],
            order_id="o-ghost",
        )
    assert exc.value.message == "Vendor not found"
    assert order_repo.get_order("o-ghost") is None


def test_verified_pickup_marks_the_order_collected(orchestrator, order_repo, notifier, vendors, make_order):
    order = make_order(status=OrderStatus.READY_FOR_PICKUP)

    result = orchestrator.verify_pickup(order.id, notifier.codes[-1][2])

    assert result.success is True
    stored = order_repo.get_order(order.id)
    assert stored.status == OrderStatus.COLLECTED.value
    assert stored.status_history[-1]["note"] == "Pickup code verified"


def test_wrong_code_leaves_the_order_ready(orchestrator, order_repo, vendors, make_order):
    order = make_order(status=OrderStatus.READY_FOR_PICKUP)

    assert orchestrator.verify_pickup(order.id, "0000").success is False
    assert order_repo.get_order(order.id).status == OrderStatus.READY_FOR_PICKUP.value


@pytest.mark.parametrize("start,target", [
    (OrderStatus.READY_FOR_PICKUP, OrderStatus.COLLECTED),
    (OrderStatus.READY_FOR_PICKUP, OrderStatus.COMPLETED),
    (OrderStatus.PREPARING, OrderStatus.COLLECTED),
    (OrderStatus.PLACED, OrderStatus.COMPLETED),
])
def test_handover_requires_a_verified_code(orchestrator, order_repo, vendors, make_order, start, target):
    order = make_order(status=start)

    with pytest.raises(InvalidState):
        orchestrator.advance_status(order.id, target)
    assert order_repo.get_order(order.id).status == start.value


def test_manual_collect_allowed_once_verified(orchestrator, order_repo, notifier, clock, vendors, make_order):
    order = make_order(status=OrderStatus.READY_FOR_PICKUP)
    orchestrator.verification.verify(order.id, notifier.codes[-1][2])

    orchestrator.advance_status(order.id, OrderStatus.COLLECTED)
    assert order_repo.get_order(order.id).status == OrderStatus.COLLECTED.value


def test_verified_orders_are_settled(orchestrator, settlement, notifier, vendors, make_order):
    order = make_order(total=200, status=OrderStatus.READY_FOR_PICKUP)
    orchestrator.verify_pickup(order.id, notifier.codes[-1][2])

    assert settlement.run_settlement_batch().count == 1


class BrokenNotifier(INotificationService):
    def send_pickup_code(self, phone, order_number, code, ttl_minutes):
        raise ConnectionError("gateway unreachable")

    def notify_admin_settlement(self, summary):
        return False


def test_notifier_failure_does_not_undo_the_status_change(order_repo, verification, clock, vendors):
    orchestrator = OrderOrchestrator(order_repo, verification, notifier=BrokenNotifier(), clock=clock)
    order = orchestrator.place_order(
        vendor_id="v1", customer_id="c1", items=[{"name": "Naan", "quantity": 1, "unit_price": 10}],
        customer_phone="+919800000000",
    )

    change = orchestrator.advance_status(order.id, OrderStatus.READY_FOR_PICKUP)

    assert change.code_expires_at is not None
    assert order_repo.get_order(order.id).status == OrderStatus.READY_FOR_PICKUP.value
