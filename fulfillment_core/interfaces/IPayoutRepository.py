from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from fulfillment_core.domain.models import PayoutBatch, PayoutStatus

class IPayoutRepository(ABC):
    @abstractmethod
    def create_batch_and_claim_orders(self, batch: PayoutBatch) -> PayoutBatch:
        """
        Persist the batch and stamp every order in batch.order_ids with its id,
        all or nothing. Raises StateConflict if any order was already claimed.
        """
        pass

    @abstractmethod
    def get_batch(self, batch_id: str) -> Optional[PayoutBatch]:
        pass

    @abstractmethod
    def list_batches(self, vendor_id: str | None = None, status: PayoutStatus | None = None) -> List[PayoutBatch]:
        pass

    @abstractmethod
    def update_batch_status(
        self, batch_id: str, expected: PayoutStatus, new: PayoutStatus, now: datetime,
        reference: str | None = None, notes: str | None = None,
    ) -> bool:
        pass
