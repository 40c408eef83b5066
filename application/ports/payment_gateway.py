"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import ProviderPayment, ProviderPaymentStatus


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the open-banking payments provider.

    Every call raises PaymentError on failure, except
    verify_webhook_signature which only ever answers True/False.
    """

    provider: str

    async def get_access_token(self) -> str: ...

    async def create_payment(
        self,
        amount_in_minor: int,
        currency: str,
        provider_id: str,
        metadata: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> ProviderPayment: ...

    async def start_authorization_flow(self, payment_id: str, return_uri: str) -> str: ...

    async def get_payment_status(self, payment_id: str) -> ProviderPaymentStatus: ...

    async def verify_webhook_signature(
        self,
        signature: str,
        raw_body: bytes,
        path: str,
        headers: Mapping[str, str],
    ) -> bool: ...

    async def aclose(self) -> None: ...
