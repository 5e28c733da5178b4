"""
Settlement batch engine.

Collects fulfilled, paid, unsettled orders, groups them per vendor and turns
each group into one pending PayoutBatch. Creating the batch and stamping its
orders happen in a single transaction that only claims still-unsettled
orders, so re-running (or running twice at once) can never pay an order out
twice. Vendor groups fail independently; whatever is left unclaimed is
picked up by the next run.
"""
import logging
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List

from sqlalchemy.exc import SQLAlchemyError

from fulfillment_core.core.clock import local_now, utcnow
from fulfillment_core.core.config import settings
from fulfillment_core.core.errors import InvalidState, NotFound, StateConflict, TransientStoreError
from fulfillment_core.domain import messages
from fulfillment_core.domain.models import (
    FULFILLED_STATUSES,
    Order,
    PaymentStatus,
    PayoutBatch,
    PayoutStatus,
)
from fulfillment_core.infrastructure.lease_manager import LeaseManager
from fulfillment_core.interfaces.INotificationService import INotificationService
from fulfillment_core.interfaces.IOrderRepository import IOrderRepository
from fulfillment_core.interfaces.IPayoutRepository import IPayoutRepository

logger = logging.getLogger(__name__)

LEASE_NAME = "settlement-run"


def calculate_net_payable(totals: Iterable, commission_rate) -> int:
    """Commission is taken off the group sum and rounded once, not per order."""
    gross = sum((Decimal(str(t)) for t in totals), Decimal("0"))
    net = gross * (Decimal("1") - Decimal(str(commission_rate)))
    return int(net.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class VendorGroup:
    vendor_id: str
    orders: List[Order] = field(default_factory=list)

    @property
    def gross(self) -> Decimal:
        return sum((Decimal(o.total) for o in self.orders), Decimal("0"))

    @property
    def order_ids(self) -> List[str]:
        return [o.id for o in self.orders]


@dataclass(frozen=True)
class VendorBalance:
    vendor_id: str
    vendor_name: str
    amount: int
    order_count: int


@dataclass
class SettlementRunResult:
    count: int
    message: str
    batch_ids: List[str] = field(default_factory=list)
    failed_vendors: List[str] = field(default_factory=list)


class SettlementEngine:
    def __init__(
        self,
        order_repo: IOrderRepository,
        payout_repo: IPayoutRepository,
        lease_manager: LeaseManager | None = None,
        notifier: INotificationService | None = None,
        commission_rate=None,
        timezone: str | None = None,
        lease_ttl_seconds: int | None = None,
        clock=utcnow,
    ):
        self.order_repo = order_repo
        self.payout_repo = payout_repo
        self.lease_manager = lease_manager
        self.notifier = notifier
        self.commission_rate = Decimal(str(commission_rate if commission_rate is not None else settings.COMMISSION_RATE))
        self.timezone = timezone or settings.TIMEZONE
        self.lease_ttl_seconds = lease_ttl_seconds or settings.SETTLEMENT_LOCK_TTL_SECONDS
        self.clock = clock

    # ---------------------------------------------------------
    # SCAN & GROUP
    # ---------------------------------------------------------

    def _collect_groups(self) -> Dict[str, VendorGroup]:
        orders = self.order_repo.find_settleable_orders(FULFILLED_STATUSES, PaymentStatus.COMPLETED.value)
        groups: Dict[str, VendorGroup] = {}
        for order in orders:
            groups.setdefault(order.vendor_id, VendorGroup(order.vendor_id)).orders.append(order)
        logger.info(f"📊 {len(orders)} settleable orders across {len(groups)} vendors")
        return groups

    def net_payable(self, group: VendorGroup) -> int:
        return calculate_net_payable((o.total for o in group.orders), self.commission_rate)

    def get_pending_balances(self) -> List[VendorBalance]:
        """Unsettled totals per vendor, largest first. Read only."""
        balances = []
        for vendor_id, group in self._collect_groups().items():
            amount = self.net_payable(group)
            if amount <= 0:
                continue
            vendor = self.order_repo.get_vendor(vendor_id)
            balances.append(
                VendorBalance(
                    vendor_id=vendor_id,
                    vendor_name=vendor.name if vendor else "Unknown Vendor",
                    amount=amount,
                    order_count=len(group.orders),
                )
            )
        return sorted(balances, key=lambda b: b.amount, reverse=True)

    # ---------------------------------------------------------
    # RUN
    # ---------------------------------------------------------

    def run_settlement_batch(self, created_by: str = "scheduler") -> SettlementRunResult:
        token = None
        if self.lease_manager is not None:
            token = self.lease_manager.acquire(LEASE_NAME, self.lease_ttl_seconds)
            if token is None:
                logger.warning("⚠️ Settlement run skipped: another run holds the lease")
                return SettlementRunResult(count=0, message="Settlement run already in progress")

        try:
            return self._run(created_by)
        finally:
            if token is not None:
                self.lease_manager.release(LEASE_NAME, token)

    def _run(self, created_by: str) -> SettlementRunResult:
        groups = self._collect_groups()
        created: List[PayoutBatch] = []
        failed: List[str] = []
        skipped = 0

        for vendor_id, group in groups.items():
            amount = self.net_payable(group)
            if amount <= 0:
                logger.info(f"⚠️ Vendor {vendor_id}: nothing payable ({amount}), skipping")
                skipped += 1
                continue

            batch = self._new_batch(group, amount, created_by)
            try:
                self.payout_repo.create_batch_and_claim_orders(batch)
            except (StateConflict, TransientStoreError, SQLAlchemyError) as e:
                # Left unclaimed; the next run picks these orders up again
                logger.error(f"❌ Vendor {vendor_id}: batch not written ({e})")
                failed.append(vendor_id)
                continue
            created.append(batch)

        message = messages.settlement_summary(
            created=len(created),
            net_total=sum(b.amount for b in created),
            failed=len(failed),
            skipped=skipped,
        )
        logger.info(f"💰 {message}")
        if self.notifier is not None and (created or failed):
            self.notifier.notify_admin_settlement(message)

        return SettlementRunResult(
            count=len(created),
            message=message,
            batch_ids=[b.id for b in created],
            failed_vendors=failed,
        )

    def _new_batch(self, group: VendorGroup, amount: int, created_by: str) -> PayoutBatch:
        now = self.clock()
        batch_id = str(uuid.uuid4())
        gross = group.gross
        return PayoutBatch(
            id=batch_id,
            batch_number=self._batch_number(batch_id, now),
            vendor_id=group.vendor_id,
            gross_amount=gross,
            commission_rate=self.commission_rate,
            commission_amount=gross - amount,
            amount=amount,
            status=PayoutStatus.PENDING.value,
            order_ids=group.order_ids,
            order_count=len(group.orders),
            created_at=now,
            created_by=created_by,
        )

    def _batch_number(self, batch_id: str, now) -> str:
        local = local_now(self.timezone, now)
        return f"BATCH-{local:%Y%m%d}-{batch_id.replace('-', '')[:6].upper()}"

    # ---------------------------------------------------------
    # BATCH LIFECYCLE (operator console)
    # ---------------------------------------------------------

    def approve_batch(self, batch_id: str, reference: str | None = None) -> PayoutBatch:
        return self._decide(batch_id, PayoutStatus.APPROVED, reference=reference)

    def reject_batch(self, batch_id: str, reason: str | None = None) -> PayoutBatch:
        # Orders stay stamped with this batch; a rejected payout is resolved by hand
        return self._decide(batch_id, PayoutStatus.REJECTED, notes=reason)

    def _decide(self, batch_id: str, new: PayoutStatus, reference=None, notes=None) -> PayoutBatch:
        batch = self.get_batch(batch_id)
        if batch.status != PayoutStatus.PENDING.value:
            raise InvalidState(f"Batch {batch.batch_number} is already {batch.status}")
        if not self.payout_repo.update_batch_status(
            batch_id, PayoutStatus.PENDING, new, self.clock(), reference=reference, notes=notes
        ):
            raise StateConflict(f"Batch {batch.batch_number} was updated by someone else")
        logger.info(f"✅ Batch {batch.batch_number} {new.value}")
        return self.get_batch(batch_id)

    def get_batch(self, batch_id: str) -> PayoutBatch:
        batch = self.payout_repo.get_batch(batch_id)
        if batch is None:
            raise NotFound("Payout batch not found")
        return batch

    def list_batches(self, status: PayoutStatus | None = None) -> List[PayoutBatch]:
        return self.payout_repo.list_batches(status=status)

    def get_vendor_payout_history(self, vendor_id: str) -> List[PayoutBatch]:
        return self.payout_repo.list_batches(vendor_id=vendor_id)
