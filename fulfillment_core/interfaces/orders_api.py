from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import logging

from fulfillment_core.core.errors import FulfillmentError
from fulfillment_core.domain.messages import demand_recommendation, format_wait_time

router = APIRouter()
logger = logging.getLogger(__name__)


class StatusUpdate(BaseModel):
    status: str
    note: str | None = None


class CodeEntry(BaseModel):
    code: str


class CodeRequest(BaseModel):
    customer_id: str


async def fulfillment_error_handler(request: Request, exc: FulfillmentError):
    """Surfaces the error taxonomy to the UI verbatim."""
    logger.info(f"⚠️ {request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    body = {"success": False, "message": exc.message}
    body.update(exc.details)
    return JSONResponse(status_code=exc.status_code, content=body)


@router.post("/orders/{order_id}/status")
def advance_status(order_id: str, payload: StatusUpdate, request: Request):
    """
    Vendor moves an order forward. Reaching ready_for_pickup mints the pickup
    code, which goes to the customer only; the vendor just sees when it expires.
    """
    orchestrator = request.app.state.orchestrator
    change = orchestrator.advance_status(order_id, payload.status, payload.note)
    expires_at = change.code_expires_at
    return {
        "order_id": change.order_id,
        "previous": change.previous.value,
        "status": change.status.value,
        "pickup_code_expires_at": expires_at.isoformat() if expires_at else None,
    }


@router.post("/orders/{order_id}/pickup-code")
def request_new_code(order_id: str, payload: CodeRequest, request: Request):
    """Customer-side: the fresh code is returned to the ordering customer only."""
    issued = request.app.state.orchestrator.request_new_code(order_id, customer_id=payload.customer_id)
    return {"order_id": order_id, "code": issued.code, "expires_at": issued.expires_at.isoformat()}


@router.post("/orders/{order_id}/pickup-code/verify")
def verify_pickup_code(order_id: str, payload: CodeEntry, request: Request):
    result = request.app.state.orchestrator.verify_pickup(order_id, payload.code)
    body = {"success": result.success, "message": result.message}
    if result.attempts_remaining is not None:
        body["attempts_remaining"] = result.attempts_remaining
    return body


@router.get("/orders/{order_id}/pickup-code/time-remaining")
def pickup_code_time_remaining(order_id: str, request: Request):
    remaining = request.app.state.verification.time_remaining(order_id)
    return {
        "minutes": remaining.minutes,
        "seconds": remaining.seconds,
        "is_expired": remaining.is_expired,
    }


@router.get("/vendors/{vendor_id}/demand")
def get_demand_snapshot(vendor_id: str, request: Request):
    snapshot = request.app.state.demand.get_demand_snapshot(vendor_id)
    return {
        "vendor_id": snapshot.vendor_id,
        "active_orders": snapshot.active_orders,
        "order_velocity": snapshot.order_velocity,
        "capacity_utilization": snapshot.capacity_utilization,
        "demand_score": snapshot.demand_score,
        "demand_level": snapshot.demand_level.value,
        "estimated_wait_minutes": snapshot.estimated_wait_minutes,
        "estimated_wait_display": format_wait_time(snapshot.estimated_wait_minutes),
        "recommendation": demand_recommendation(snapshot.demand_level),
        "computed_at": snapshot.computed_at.isoformat(),
    }
