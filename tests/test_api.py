import pytest
from fastapi.testclient import TestClient

from fulfillment_core.bootstrap import create_app
from fulfillment_core.domain.models import FULFILLED_STATUSES, OrderStatus, PaymentStatus, Vendor
from fulfillment_core.infrastructure.lease_manager import LeaseManager


@pytest.fixture
def app(session_factory, notifier, clock):
    app = create_app(session_factory=session_factory, lease_manager=LeaseManager(), notifier=notifier, clock=clock)
    app.state.order_repo.add_vendor(Vendor(id="v1", name="Spice Garden", max_concurrent_orders=4, base_wait_minutes=10))
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def place(app, notifier):
    orchestrator = app.state.orchestrator

    def _place(total=100, status=OrderStatus.PLACED, phone="+919800000000"):
        order = orchestrator.place_order(
            vendor_id="v1",
            customer_id="c1",
            items=[{"id": "1", "name": "Dosa", "quantity": 1, "unit_price": total}],
            customer_phone=phone,
            payment_status=PaymentStatus.COMPLETED,
        )
        if status in FULFILLED_STATUSES:
            orchestrator.advance_status(order.id, OrderStatus.READY_FOR_PICKUP)
            orchestrator.verify_pickup(order.id, notifier.codes[-1][2])
            if status == OrderStatus.COMPLETED:
                orchestrator.advance_status(order.id, status)
        elif status != OrderStatus.PLACED:
            orchestrator.advance_status(order.id, status)
        return order
    return _place


def test_health(client):
    assert client.get("/").json()["status"] == "active"


def test_pickup_flow(client, place, notifier):
    order = place(status=OrderStatus.PREPARING)

    response = client.post(f"/orders/{order.id}/status", json={"status": "ready_for_pickup"})
    assert response.status_code == 200
    body = response.json()
    assert body["previous"] == "preparing"
    assert body["pickup_code_expires_at"]
    code = notifier.codes[-1][2]
    # The code only goes to the customer
    assert set(body) == {"order_id", "previous", "status", "pickup_code_expires_at"}

    wrong = client.post(f"/orders/{order.id}/pickup-code/verify", json={"code": "0000"})
    assert wrong.status_code == 200
    assert wrong.json() == {"success": False, "message": "Invalid code. 4 attempts remaining", "attempts_remaining": 4}

    right = client.post(f"/orders/{order.id}/pickup-code/verify", json={"code": code})
    assert right.json()["success"] is True
    assert client.app.state.order_repo.get_order(order.id).status == "collected"

    again = client.post(f"/orders/{order.id}/pickup-code/verify", json={"code": code})
    assert again.status_code == 409
    assert again.json() == {"success": False, "message": "Pickup code has already been used"}


def test_vendor_cannot_hand_over_without_the_code(client, place):
    order = place(status=OrderStatus.READY_FOR_PICKUP, phone=None)

    response = client.post(f"/orders/{order.id}/status", json={"status": "collected"})
    assert response.status_code == 409
    assert client.get(f"/orders/{order.id}/pickup-code/time-remaining").json()["is_expired"] is False


def test_expired_code_then_new_code(client, place, clock):
    order = place(status=OrderStatus.READY_FOR_PICKUP)

    remaining = client.get(f"/orders/{order.id}/pickup-code/time-remaining").json()
    assert remaining == {"minutes": 15, "seconds": 0, "is_expired": False}

    clock.advance(minutes=20)
    expired = client.post(f"/orders/{order.id}/pickup-code/verify", json={"code": "1234"})
    assert expired.status_code == 410
    assert "request a new code" in expired.json()["message"]

    assert client.post(f"/orders/{order.id}/pickup-code", json={"customer_id": "c2"}).status_code == 404
    fresh = client.post(f"/orders/{order.id}/pickup-code", json={"customer_id": "c1"})
    assert fresh.status_code == 200
    code = fresh.json()["code"]
    assert client.post(f"/orders/{order.id}/pickup-code/verify", json={"code": code}).json()["success"] is True


def test_locked_out_after_five_wrong_codes(client, place):
    order = place(status=OrderStatus.READY_FOR_PICKUP)
    for _ in range(5):
        client.post(f"/orders/{order.id}/pickup-code/verify", json={"code": "0000"})

    locked = client.post(f"/orders/{order.id}/pickup-code/verify", json={"code": "0000"})
    assert locked.status_code == 429
    assert locked.json()["attempts_remaining"] == 0


def test_error_mapping(client, place):
    order = place()
    assert client.post(f"/orders/{order.id}/status", json={"status": "bogus"}).status_code == 400
    assert client.post("/orders/missing/status", json={"status": "confirmed"}).status_code == 404
    assert client.post(f"/orders/{order.id}/pickup-code", json={"customer_id": "c1"}).status_code == 409
    assert client.post(f"/orders/{order.id}/pickup-code/verify", json={"code": "12"}).status_code == 400
    assert client.get(f"/orders/{order.id}/pickup-code/time-remaining").status_code == 404


def test_demand_snapshot(client, place):
    for _ in range(2):
        place()

    body = client.get("/vendors/v1/demand").json()
    assert body["active_orders"] == 2
    assert body["capacity_utilization"] == 50
    # 2 orders in a 15 minute window
    assert body["order_velocity"] == pytest.approx(0.13)
    assert body["demand_level"] == "medium"
    assert body["estimated_wait_display"].endswith("mins")
    assert body["recommendation"]

    assert client.get("/vendors/nobody/demand").status_code == 404


def test_settlement_endpoints(client, place):
    for total in (100, 250, 150):
        place(total=total, status=OrderStatus.COMPLETED)

    pending = client.get("/admin/settlement/pending").json()
    assert pending == [{"vendor_id": "v1", "vendor_name": "Spice Garden", "amount": 475, "order_count": 3}]

    run = client.post("/admin/settlement/run", json={"created_by": "ops"}).json()
    assert run["count"] == 1
    batch_id = run["batch_ids"][0]

    assert client.post("/admin/settlement/run").json()["count"] == 0
    assert client.get("/admin/settlement/pending").json() == []

    batch = client.get(f"/admin/payout-batches/{batch_id}").json()
    assert batch["amount"] == 475
    assert batch["created_by"] == "ops"
    assert batch["status"] == "pending"

    approved = client.post(f"/admin/payout-batches/{batch_id}/approve", json={"reference": "UTR9"}).json()
    assert approved["status"] == "approved"
    assert approved["reference"] == "UTR9"
    assert client.post(f"/admin/payout-batches/{batch_id}/reject", json={}).status_code == 409

    assert [b["id"] for b in client.get("/admin/payout-batches?status=approved").json()] == [batch_id]
    assert client.get("/admin/payout-batches?status=lost").status_code == 400
    assert len(client.get("/vendors/v1/payouts").json()) == 1
    assert client.get("/admin/payout-batches/missing").status_code == 404
