"""
Webhook dispatch: authenticate, decode, route to the status transition.

Routing is a closed table keyed by WebhookEventType
(domain.payment.transitions.TRANSITIONS); unknown types are acknowledged
and dropped so the provider stops redelivering them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from application.ports.payment_gateway import PaymentGateway
from application.services.payment_lifecycle import PaymentLifecycle
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.payment.events import WebhookEventType, build_event
from domain.payment.transitions import TRANSITIONS, StatusUpdate
from shared.codes import BusinessCode


logger = get_logger(__name__)


class WebhookAuthenticationError(BusinessException):
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="WebhookAuthenticationError",
        )


@dataclass(frozen=True)
class DispatchResult:
    handled: bool
    event_type: Optional[str] = None
    payment_id: Optional[str] = None
    reason: Optional[str] = None


class WebhookDispatcher:
    def __init__(self, gateway: PaymentGateway, lifecycle: PaymentLifecycle) -> None:
        self.gateway = gateway
        self.lifecycle = lifecycle

    async def dispatch(
        self,
        signature_header: Optional[str],
        raw_body: bytes,
        request_path: str,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
    ) -> DispatchResult:
        if not signature_header:
            logger.warning("webhook_signature_missing", path=request_path)
            raise WebhookAuthenticationError("Missing signature")

        valid = await self.gateway.verify_webhook_signature(signature_header, raw_body, request_path, headers)
        if not valid:
            logger.warning("webhook_signature_rejected", path=request_path)
            raise WebhookAuthenticationError("Invalid signature")

        raw_type = payload.get("type")
        payment_id = payload.get("payment_id")
        logger.info(
            "webhook_received",
            event_type=raw_type,
            event_id=payload.get("event_id"),
            payment_id=payment_id,
        )

        if not payment_id:
            logger.warning("webhook_missing_payment_id", event_type=raw_type)
            return DispatchResult(handled=False, event_type=raw_type, reason="missing_payment_id")

        event_type = WebhookEventType.lookup(raw_type)
        if event_type is None:
            logger.info("webhook_unhandled_event_type", event_type=raw_type, payment_id=payment_id)
            return DispatchResult(handled=False, event_type=raw_type, payment_id=payment_id, reason="unknown_event_type")

        event = build_event(event_type, dict(payload))
        update = TRANSITIONS[event_type](event)
        self._announce(update)
        await self.lifecycle.update_status(
            update.payment_id,
            update.status,
            update.metadata,
            source=f"webhook:{update.event_type}",
        )
        return DispatchResult(handled=True, event_type=event_type.value, payment_id=event.payment_id)

    @staticmethod
    def _announce(update: StatusUpdate) -> None:
        log = getattr(logger, update.severity, logger.info)
        log(
            "webhook_transition",
            event_type=update.event_type,
            payment_id=update.payment_id,
            status=update.status.value,
        )
