import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from fulfillment_core.core.clock import as_utc
from fulfillment_core.domain.models import (
    Order,
    OrderStatus,
    PickupVerification,
    SettlementStatus,
    Vendor,
)
from fulfillment_core.infrastructure.repositories.base import SqlRepository
from fulfillment_core.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)

class SqlOrderRepository(SqlRepository, IOrderRepository):

    def add_vendor(self, vendor: Vendor) -> Vendor:
        with self._session() as session:
            session.add(vendor)
            session.commit()
            return vendor

    def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        with self._session() as session:
            return session.get(Vendor, vendor_id)

    def add_order(self, order: Order) -> Order:
        with self._session() as session:
            session.add(order)
            session.commit()
            return order

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._session() as session:
            return session.get(Order, order_id)

    def update_status(
        self, order_id: str, expected: OrderStatus, new: OrderStatus, now: datetime, note: str | None = None
    ) -> bool:
        with self._session() as session:
            order = session.get(Order, order_id)
            if order is None or order.status != expected.value:
                return False

            history = list(order.status_history or [])
            history.append({"status": new.value, "timestamp": now.isoformat(), "note": note})

            # The WHERE on status makes this a compare-and-set
            result = session.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == expected.value)
                .values(status=new.value, updated_at=now, status_history=history)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    # ---------------------------------------------------------
    # PICKUP VERIFICATION (compare-and-set on version)
    # ---------------------------------------------------------

    def get_verification(self, order_id: str) -> Optional[PickupVerification]:
        with self._session() as session:
            return session.get(PickupVerification, order_id)

    def insert_verification(self, record: PickupVerification) -> bool:
        with self._session() as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                # Someone issued a code for this order first
                session.rollback()
                return False
            return True

    def replace_verification(
        self, order_id: str, expected_version: int, code_hash: str,
        generated_at: datetime, expires_at: datetime, max_attempts: int,
    ) -> bool:
        return self._cas_verification(
            order_id,
            expected_version,
            code_hash=code_hash,
            generated_at=generated_at,
            expires_at=expires_at,
            attempts=0,
            max_attempts=max_attempts,
            consumed=False,
            verified_at=None,
        )

    def record_failed_attempt(self, order_id: str, expected_version: int) -> bool:
        return self._cas_verification(
            order_id,
            expected_version,
            extra_conditions=(
                PickupVerification.consumed.is_(False),
                PickupVerification.attempts < PickupVerification.max_attempts,
            ),
            attempts=PickupVerification.attempts + 1,
        )

    def mark_verification_consumed(self, order_id: str, expected_version: int, now: datetime) -> bool:
        return self._cas_verification(
            order_id,
            expected_version,
            extra_conditions=(PickupVerification.consumed.is_(False),),
            consumed=True,
            verified_at=now,
        )

    def _cas_verification(self, order_id: str, expected_version: int, extra_conditions=(), **values) -> bool:
        with self._session() as session:
            result = session.execute(
                update(PickupVerification)
                .where(
                    PickupVerification.order_id == order_id,
                    PickupVerification.version == expected_version,
                    *extra_conditions,
                )
                .values(version=PickupVerification.version + 1, **values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if result.rowcount != 1:
                logger.info(f"🔄 Verification for order {order_id} changed under us (v{expected_version})")
                return False
            return True

    # ---------------------------------------------------------
    # READ MODELS
    # ---------------------------------------------------------

    def find_settleable_orders(
        self, statuses: Sequence[OrderStatus], payment_status: str, vendor_id: str | None = None
    ) -> List[Order]:
        with self._session() as session:
            query = select(Order).where(
                Order.status.in_([s.value for s in statuses]),
                Order.payment_status == payment_status,
                Order.settlement_status == SettlementStatus.UNSETTLED.value,
            )
            if vendor_id is not None:
                query = query.where(Order.vendor_id == vendor_id)
            return list(session.scalars(query.order_by(Order.created_at, Order.id)))

    def count_active_orders(self, vendor_id: str, statuses: Sequence[OrderStatus]) -> int:
        with self._session() as session:
            return session.scalar(
                select(func.count())
                .select_from(Order)
                .where(Order.vendor_id == vendor_id, Order.status.in_([s.value for s in statuses]))
            )

    def recent_order_times(self, vendor_id: str, since: datetime) -> List[datetime]:
        with self._session() as session:
            rows = session.scalars(
                select(Order.created_at).where(Order.vendor_id == vendor_id, Order.created_at >= since)
            )
            return [as_utc(t) for t in rows]
