"""
Payment lifecycle: the single gate through which status changes reach the store.

Status moves only forward (or into FAILED); an update that would move it
backwards still records its metadata but leaves the status alone. Applying
the same update twice yields the same record.
"""
from __future__ import annotations

from typing import Any, Optional

from core.logging_config import get_logger
from domain.payment.entity import Payment, PaymentStatus, can_transition
from domain.payment.repository import PaymentStore


logger = get_logger(__name__)


class PaymentLifecycle:
    def __init__(self, store: PaymentStore) -> None:
        self.store = store

    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus | str,
        metadata_patch: Optional[dict[str, Any]] = None,
        *,
        source: Optional[str] = None,
    ) -> bool:
        """Apply `status` if allowed. Returns whether it was applied."""
        target = PaymentStatus(status)
        current = await self.store.get(payment_id)

        if current is not None and not can_transition(current.status, target):
            logger.warning(
                "transition_rejected",
                payment_id=payment_id,
                current=current.status.value,
                target=target.value,
                source=source,
            )
            await self.store.update_status(payment_id, current.status, metadata_patch, source=source)
            return False

        await self.store.update_status(payment_id, target, metadata_patch, source=source)
        logger.info(
            "payment_status_updated",
            payment_id=payment_id,
            previous=current.status.value if current else None,
            status=target.value,
            source=source,
        )
        return True

    async def mark_authorizing(
        self,
        payment_id: str,
        *,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
        hpp_url: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        provider_status: Optional[str] = None,
    ) -> Optional[Payment]:
        """Record that the authorization flow has started.

        With amount and currency this writes the creation record at the
        status the provider reported (authorization_required by default)
        and then moves it to AUTHORIZING, so the history shows both steps.
        Without them it is a plain status transition.
        """
        if amount is None or currency is None:
            await self.update_status(payment_id, PaymentStatus.AUTHORIZING, metadata, source="authorization_flow")
            return None

        initial = PaymentStatus.AUTHORIZATION_REQUIRED
        if provider_status:
            try:
                initial = PaymentStatus(provider_status)
            except ValueError:
                logger.warning("payment_unknown_provider_status", payment_id=payment_id, status=provider_status)
        await self.store.create(
            payment_id,
            amount,
            currency,
            initial,
            hpp_url=hpp_url,
            metadata=metadata,
        )
        await self.update_status(payment_id, PaymentStatus.AUTHORIZING, source="authorization_flow")
        return await self.store.get(payment_id)
