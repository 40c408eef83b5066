"""
Application service orchestrating payment use-cases.

This class depends only on the application PaymentGateway port, the
PaymentLifecycle and DTOs. Gateway and store implementations are provided
by infrastructure and injected from the composition root (main.py).
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode

from application.dtos.payments import CreatePaymentRequest, CreatePaymentResult
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_lifecycle import PaymentLifecycle
from core.logging_config import get_logger
from core.settings import TrueLayerSettings
from domain.common.exceptions import PaymentNotFoundException
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.errors import PaymentError
from shared.codes.payment_codes import PaymentErrorCode


logger = get_logger(__name__)

CALLBACK_FALLBACK_MESSAGE = "An error occurred while processing your payment callback."


def _validation_error(message: str, user_message: str) -> PaymentError:
    return PaymentError(
        PaymentErrorCode.VALIDATION_ERROR,
        message,
        http_status=400,
        retryable=False,
        user_message=user_message,
    )


class PaymentService:
    def __init__(
        self,
        gateway: PaymentGateway,
        lifecycle: PaymentLifecycle,
        cfg: TrueLayerSettings,
    ) -> None:
        self.gateway = gateway
        self.lifecycle = lifecycle
        self.cfg = cfg

    def _validate(self, req: CreatePaymentRequest) -> tuple[int, str, Optional[dict]]:
        """Return (amount, currency, metadata) or raise VALIDATION_ERROR / CONFIGURATION_ERROR."""
        if not isinstance(req.provider_id, str) or not req.provider_id.strip():
            raise _validation_error("Missing required field: provider_id", "Please select a payment provider.")
        amount = req.amount
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise _validation_error(
                "Invalid amount. Must be a positive integer in the minor unit.",
                "Please enter a valid payment amount.",
            )
        currency = req.currency if req.currency not in (None, "") else self.cfg.merchant_currency
        if not isinstance(currency, str) or len(currency) != 3 or not currency.isalpha():
            raise _validation_error(
                f"Invalid currency: {currency!r}. Must be an ISO-4217 alpha-3 code.",
                "Please select a valid currency.",
            )
        if req.metadata is not None and not isinstance(req.metadata, dict):
            raise _validation_error("Invalid metadata. Must be a JSON object.", "Invalid payment details.")
        if not self.cfg.callback_url:
            raise PaymentError(
                PaymentErrorCode.CONFIGURATION_ERROR,
                "TRUELAYER__CALLBACK_URL is not configured.",
                http_status=500,
                retryable=False,
                user_message="Payment system is misconfigured. Please contact support.",
            )
        return amount, currency.upper(), req.metadata

    async def create_payment(self, req: CreatePaymentRequest) -> CreatePaymentResult:
        amount, currency, metadata = self._validate(req)
        logger.info(
            "payment_create_request",
            amount=amount,
            currency=currency,
            provider_id=req.provider_id,
        )

        payment = await self.gateway.create_payment(amount, currency, req.provider_id, metadata)
        hpp_url = await self.gateway.start_authorization_flow(payment.id, self.cfg.callback_url)
        logger.info("payment_create_response", payment_id=payment.id, status=payment.status)

        try:
            await self.lifecycle.mark_authorizing(
                payment.id,
                amount=amount,
                currency=currency,
                hpp_url=hpp_url,
                metadata=metadata,
                provider_status=payment.status,
            )
        except Exception as exc:
            # Non-fatal: the provider payment already exists
            logger.error("payment_persist_failed", payment_id=payment.id, error=str(exc))

        return CreatePaymentResult(success=True, payment_id=payment.id, hpp_url=hpp_url)

    def _frontend(self) -> str:
        return (self.cfg.frontend_url or "").rstrip("/")

    def _error_redirect(self, exc: Exception, payment_id: Optional[str]) -> str:
        params: list[tuple[str, str]] = []
        if isinstance(exc, PaymentError):
            params.append(("error", exc.user_message))
            params.append(("error_code", exc.code.value))
        else:
            params.append(("error", CALLBACK_FALLBACK_MESSAGE))
        if payment_id:
            params.append(("payment_id", payment_id))
        return f"{self._frontend()}/payment-result.html?{urlencode(params)}"

    async def handle_callback(self, payment_id: Optional[str]) -> str:
        """Resolve the return from the hosted payment page into a redirect URL."""
        try:
            if not payment_id:
                raise _validation_error("Missing 'payment_id' parameter.", "Missing payment reference.")
            logger.info("payment_callback_received", payment_id=payment_id)

            details = await self.gateway.get_payment_status(payment_id)
            logger.info("payment_callback_status", payment_id=payment_id, status=details.status)

            try:
                await self._record_callback(payment_id, details.status)
            except Exception as exc:
                logger.error("payment_callback_persist_failed", payment_id=payment_id, error=str(exc))

            query = urlencode(
                [
                    ("payment_id", payment_id),
                    ("status", details.status),
                    ("amount", str(details.amount_in_minor)),
                    ("currency", details.currency),
                ]
            )
            return f"{self._frontend()}?{query}"
        except Exception as exc:
            logger.error(
                "payment_callback_failed",
                payment_id=payment_id,
                error=str(exc),
                code=getattr(getattr(exc, "code", None), "value", None),
            )
            return self._error_redirect(exc, payment_id)

    async def _record_callback(self, payment_id: str, provider_status: str) -> None:
        patch = {"callbackReceivedAt": datetime.now(timezone.utc).isoformat()}
        try:
            status = PaymentStatus(provider_status)
        except ValueError:
            logger.warning("payment_callback_unknown_status", payment_id=payment_id, status=provider_status)
            return
        await self.lifecycle.update_status(payment_id, status, patch, source="callback")

    async def get_payment(self, payment_id: str) -> Payment:
        payment = await self.lifecycle.store.get(payment_id)
        if payment is None:
            raise PaymentNotFoundException(payment_id)
        return payment

    async def aclose(self) -> None:
        # Best-effort close underlying resources
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()
