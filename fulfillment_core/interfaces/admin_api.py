from fastapi import APIRouter, Request
from pydantic import BaseModel

from fulfillment_core.core.clock import as_utc
from fulfillment_core.core.errors import ValidationError
from fulfillment_core.domain.models import PayoutStatus

router = APIRouter()


class SettlementTrigger(BaseModel):
    created_by: str = "console"


class BatchDecision(BaseModel):
    reference: str | None = None
    reason: str | None = None


def _iso(value):
    return as_utc(value).isoformat() if value else None


def _batch(batch):
    return {
        "id": batch.id,
        "batch_number": batch.batch_number,
        "vendor_id": batch.vendor_id,
        "amount": batch.amount,
        "gross_amount": str(batch.gross_amount),
        "commission_amount": str(batch.commission_amount),
        "status": batch.status,
        "order_ids": list(batch.order_ids),
        "order_count": batch.order_count,
        "created_at": _iso(batch.created_at),
        "created_by": batch.created_by,
        "processed_at": _iso(batch.processed_at),
        "reference": batch.reference,
        "notes": batch.notes,
    }


@router.post("/admin/settlement/run")
def run_settlement(request: Request, payload: SettlementTrigger | None = None):
    created_by = payload.created_by if payload else "console"
    result = request.app.state.settlement.run_settlement_batch(created_by=created_by)
    return {
        "count": result.count,
        "message": result.message,
        "batch_ids": result.batch_ids,
        "failed_vendors": result.failed_vendors,
    }


@router.get("/admin/settlement/pending")
def pending_balances(request: Request):
    return [
        {
            "vendor_id": b.vendor_id,
            "vendor_name": b.vendor_name,
            "amount": b.amount,
            "order_count": b.order_count,
        }
        for b in request.app.state.settlement.get_pending_balances()
    ]


@router.get("/admin/payout-batches")
def list_payout_batches(request: Request, status: str | None = None):
    try:
        wanted = PayoutStatus(status) if status else None
    except ValueError:
        raise ValidationError(f"Unknown payout status: {status}")
    return [_batch(b) for b in request.app.state.settlement.list_batches(status=wanted)]


@router.get("/admin/payout-batches/{batch_id}")
def get_payout_batch(batch_id: str, request: Request):
    return _batch(request.app.state.settlement.get_batch(batch_id))


@router.post("/admin/payout-batches/{batch_id}/approve")
def approve_payout_batch(batch_id: str, payload: BatchDecision, request: Request):
    return _batch(request.app.state.settlement.approve_batch(batch_id, reference=payload.reference))


@router.post("/admin/payout-batches/{batch_id}/reject")
def reject_payout_batch(batch_id: str, payload: BatchDecision, request: Request):
    return _batch(request.app.state.settlement.reject_batch(batch_id, reason=payload.reason))


@router.get("/vendors/{vendor_id}/payouts")
def vendor_payout_history(vendor_id: str, request: Request):
    return [_batch(b) for b in request.app.state.settlement.get_vendor_payout_history(vendor_id)]
