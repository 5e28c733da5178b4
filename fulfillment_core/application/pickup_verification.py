"""
Pickup verification state machine.

    NotIssued -> Active -> Consumed
    Active -> Expired -> (re-issue) -> Active

Every write is a compare-and-set against the record's version, so several
app instances can verify the same order at once without losing or
double-counting attempts. A writer that loses the race re-reads the record
and runs every check again.
"""
import enum
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from fulfillment_core.core.clock import as_utc, utcnow
from fulfillment_core.core.config import settings
from fulfillment_core.core.errors import (
    AlreadyActive,
    AlreadyConsumed,
    AttemptsExceeded,
    Expired,
    InvalidState,
    NotFound,
    TransientStoreError,
    ValidationError,
)
from fulfillment_core.domain import messages
from fulfillment_core.domain.models import OrderStatus, PickupVerification
from fulfillment_core.domain.pickup_code import generate_code, hash_code, is_well_formed
from fulfillment_core.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)


class VerificationState(str, enum.Enum):
    NOT_ISSUED = "not_issued"
    ACTIVE = "active"
    CONSUMED = "consumed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class IssuedCode:
    order_id: str
    code: str  # never persisted; only the digest is stored
    expires_at: datetime


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    message: str
    attempts_remaining: int | None = None


@dataclass(frozen=True)
class TimeRemaining:
    minutes: int
    seconds: int
    is_expired: bool


def compute_time_remaining(expires_at: datetime, now: datetime) -> TimeRemaining:
    total_seconds = int((as_utc(expires_at) - now).total_seconds())
    if total_seconds <= 0:
        return TimeRemaining(minutes=0, seconds=0, is_expired=True)
    minutes, seconds = divmod(total_seconds, 60)
    return TimeRemaining(minutes=minutes, seconds=seconds, is_expired=False)


class PickupVerificationService:
    def __init__(
        self,
        order_repo: IOrderRepository,
        ttl_minutes: int | None = None,
        max_attempts: int | None = None,
        cas_retries: int | None = None,
        clock=utcnow,
    ):
        self.order_repo = order_repo
        self.ttl = timedelta(minutes=ttl_minutes or settings.PICKUP_CODE_TTL_MINUTES)
        self.max_attempts = max_attempts or settings.PICKUP_MAX_ATTEMPTS
        self.cas_retries = cas_retries or settings.VERIFY_CAS_RETRIES
        self.clock = clock

    def issue(self, order_id: str) -> IssuedCode:
        for _ in range(self.cas_retries):
            order = self.order_repo.get_order(order_id)
            if order is None:
                raise NotFound("Order not found")
            if order.status != OrderStatus.READY_FOR_PICKUP.value:
                raise InvalidState("Order is not ready for pickup yet")

            now = self.clock()
            existing = self.order_repo.get_verification(order_id)
            if existing is not None:
                if existing.consumed:
                    raise AlreadyConsumed("Order has already been collected")
                if not self._is_expired(existing, now):
                    raise AlreadyActive()

            code = generate_code()
            code_hash = hash_code(code)
            expires_at = now + self.ttl

            if existing is None:
                stored = self.order_repo.insert_verification(
                    PickupVerification(
                        order_id=order_id,
                        code_hash=code_hash,
                        generated_at=now,
                        expires_at=expires_at,
                        attempts=0,
                        max_attempts=self.max_attempts,
                        consumed=False,
                        version=1,
                    )
                )
            else:
                # Supersedes the expired code; the old digest is gone in the same write
                stored = self.order_repo.replace_verification(
                    order_id,
                    existing.version,
                    code_hash=code_hash,
                    generated_at=now,
                    expires_at=expires_at,
                    max_attempts=self.max_attempts,
                )

            if stored:
                logger.info(f"✅ Pickup code issued for order {order_id}, expires {expires_at.isoformat()}")
                return IssuedCode(order_id=order_id, code=code, expires_at=expires_at)

        raise TransientStoreError()

    def verify(self, order_id: str, entered_code: str) -> VerificationResult:
        """
        Wrong codes come back as an unsuccessful result with the attempts left;
        every other refusal is raised.
        """
        if isinstance(entered_code, str):
            entered_code = entered_code.strip()
        if not is_well_formed(entered_code):
            raise ValidationError("Pickup code must be 4 digits")
        entered_hash = hash_code(entered_code)

        for _ in range(self.cas_retries):
            record = self.order_repo.get_verification(order_id)
            if record is None:
                raise NotFound("No pickup code has been issued for this order")
            if record.consumed:
                raise AlreadyConsumed()

            now = self.clock()
            if self._is_expired(record, now):
                raise Expired()
            if record.attempts >= record.max_attempts:
                raise AttemptsExceeded(attempts_remaining=0)

            if hmac.compare_digest(entered_hash, record.code_hash):
                if self.order_repo.mark_verification_consumed(order_id, record.version, now):
                    logger.info(f"✅ Pickup verified for order {order_id}")
                    return VerificationResult(success=True, message=messages.VERIFY_SUCCESS)
                continue

            if self.order_repo.record_failed_attempt(order_id, record.version):
                remaining = record.max_attempts - (record.attempts + 1)
                logger.info(f"⚠️ Wrong pickup code for order {order_id}, {remaining} attempts left")
                return VerificationResult(
                    success=False,
                    message=messages.invalid_code(remaining),
                    attempts_remaining=remaining,
                )

        logger.warning(f"⚠️ Gave up verifying order {order_id} after {self.cas_retries} contended writes")
        raise TransientStoreError()

    def time_remaining(self, order_id: str) -> TimeRemaining:
        record = self.order_repo.get_verification(order_id)
        if record is None:
            raise NotFound("No pickup code has been issued for this order")
        return compute_time_remaining(record.expires_at, self.clock())

    def state(self, order_id: str) -> VerificationState:
        record = self.order_repo.get_verification(order_id)
        if record is None:
            return VerificationState.NOT_ISSUED
        if record.consumed:
            return VerificationState.CONSUMED
        if self._is_expired(record, self.clock()):
            return VerificationState.EXPIRED
        return VerificationState.ACTIVE

    @staticmethod
    def _is_expired(record: PickupVerification, now: datetime) -> bool:
        return now > as_utc(record.expires_at)
