import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc, select, update

from fulfillment_core.core.errors import StateConflict
from fulfillment_core.domain.models import (
    FULFILLED_STATUSES,
    Order,
    PaymentStatus,
    PayoutBatch,
    PayoutStatus,
    SettlementStatus,
)
from fulfillment_core.infrastructure.repositories.base import SqlRepository
from fulfillment_core.interfaces.IPayoutRepository import IPayoutRepository

logger = logging.getLogger(__name__)

class SqlPayoutRepository(SqlRepository, IPayoutRepository):

    def create_batch_and_claim_orders(self, batch: PayoutBatch) -> PayoutBatch:
        order_ids = list(batch.order_ids)
        with self._session() as session:
            session.add(batch)
            session.flush()

            # Only orders nobody has claimed yet and that are still paid and fulfilled;
            # a concurrent run or a late refund loses here
            result = session.execute(
                update(Order)
                .where(
                    Order.id.in_(order_ids),
                    Order.settlement_status == SettlementStatus.UNSETTLED.value,
                    Order.payment_status == PaymentStatus.COMPLETED.value,
                    Order.status.in_([s.value for s in FULFILLED_STATUSES]),
                )
                .values(
                    settlement_status=SettlementStatus.SETTLED.value,
                    settlement_batch_id=batch.id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(order_ids):
                session.rollback()
                raise StateConflict(
                    f"{len(order_ids) - result.rowcount} of {len(order_ids)} orders "
                    f"for vendor {batch.vendor_id} were settled, refunded or reopened meanwhile",
                    vendor_id=batch.vendor_id,
                )

            session.commit()
            logger.info(f"✅ Batch {batch.batch_number} claimed {len(order_ids)} orders for vendor {batch.vendor_id}")
            return batch

    def get_batch(self, batch_id: str) -> Optional[PayoutBatch]:
        with self._session() as session:
            return session.get(PayoutBatch, batch_id)

    def list_batches(self, vendor_id: str | None = None, status: PayoutStatus | None = None) -> List[PayoutBatch]:
        """Newest first."""
        with self._session() as session:
            query = select(PayoutBatch)
            if vendor_id is not None:
                query = query.where(PayoutBatch.vendor_id == vendor_id)
            if status is not None:
                query = query.where(PayoutBatch.status == status.value)
            return list(session.scalars(query.order_by(desc(PayoutBatch.created_at))))

    def update_batch_status(
        self, batch_id: str, expected: PayoutStatus, new: PayoutStatus, now: datetime,
        reference: str | None = None, notes: str | None = None,
    ) -> bool:
        values = {"status": new.value, "processed_at": now}
        if reference is not None:
            values["reference"] = reference
        if notes is not None:
            values["notes"] = notes

        with self._session() as session:
            result = session.execute(
                update(PayoutBatch)
                .where(PayoutBatch.id == batch_id, PayoutBatch.status == expected.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1
