"""
Payment store interface - key-value document access keyed by payment id.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Payment, PaymentStatus


class PaymentStore(ABC):
    """Durable payment record store. Only declares what can be done, not how."""

    @abstractmethod
    async def create(
        self,
        payment_id: str,
        amount: int,
        currency: str,
        status: PaymentStatus,
        hpp_url: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Payment:
        """Create (or overwrite) the record for a freshly created payment."""
        pass

    @abstractmethod
    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        metadata_patch: Optional[dict] = None,
        *,
        source: Optional[str] = None,
    ) -> None:
        """Merge a status and metadata patch into the record.

        Metadata merges key-wise, None values are dropped and hpp_url is never
        cleared. A missing record is created as a partial document.
        """
        pass

    @abstractmethod
    async def get(self, payment_id: str) -> Optional[Payment]:
        """Return the full record, or None when absent or only partially known."""
        pass
