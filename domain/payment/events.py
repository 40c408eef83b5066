"""
Payment webhook events.

One dataclass per provider notification type. Events are facts reported by
the provider; turning them into status changes is the job of
domain.payment.transitions. Domain stays free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class WebhookEventType(str, Enum):
    PAYMENT_AUTHORIZED = "payment_authorized"
    PAYMENT_EXECUTED = "payment_executed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_SETTLED = "payment_settled"
    PAYMENT_CREDITABLE = "payment_creditable"
    PAYMENT_SETTLEMENT_STALLED = "payment_settlement_stalled"
    PAYMENT_DISPUTED = "payment_disputed"
    PAYMENT_REVERSED = "payment_reversed"
    PAYMENT_FUNDS_RECEIVED = "payment_funds_received"

    @classmethod
    def lookup(cls, value: Any) -> Optional["WebhookEventType"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class PaymentWebhookEvent:
    type: WebhookEventType
    payment_id: str
    event_id: Optional[str] = None
    event_version: Optional[int] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def received_at_iso(self) -> str:
        return self.received_at.isoformat()

    def occurred_at(self, value: Optional[str]) -> str:
        """Provider timestamp, or the receipt time when the provider omitted it."""
        return value or self.received_at_iso


@dataclass
class PaymentAuthorized(PaymentWebhookEvent):
    authorized_at: Optional[str] = None


@dataclass
class PaymentExecuted(PaymentWebhookEvent):
    executed_at: Optional[str] = None


@dataclass
class PaymentFailed(PaymentWebhookEvent):
    failed_at: Optional[str] = None
    failure_reason: Optional[str] = None
    failure_stage: Optional[str] = None


@dataclass
class PaymentSettled(PaymentWebhookEvent):
    settled_at: Optional[str] = None


@dataclass
class PaymentCreditable(PaymentWebhookEvent):
    creditable_at: Optional[str] = None


@dataclass
class PaymentSettlementStalled(PaymentWebhookEvent):
    settlement_stalled_at: Optional[str] = None
    stalled_threshold_seconds: Optional[int] = None


@dataclass
class PaymentDisputed(PaymentWebhookEvent):
    disputed_at: Optional[str] = None
    dispute_reason: Optional[str] = None


@dataclass
class PaymentReversed(PaymentWebhookEvent):
    reversed_at: Optional[str] = None
    reversal_reason: Optional[str] = None


@dataclass
class PaymentFundsReceived(PaymentWebhookEvent):
    funds_received_at: Optional[str] = None


EVENT_CLASSES: dict[WebhookEventType, type[PaymentWebhookEvent]] = {
    WebhookEventType.PAYMENT_AUTHORIZED: PaymentAuthorized,
    WebhookEventType.PAYMENT_EXECUTED: PaymentExecuted,
    WebhookEventType.PAYMENT_FAILED: PaymentFailed,
    WebhookEventType.PAYMENT_SETTLED: PaymentSettled,
    WebhookEventType.PAYMENT_CREDITABLE: PaymentCreditable,
    WebhookEventType.PAYMENT_SETTLEMENT_STALLED: PaymentSettlementStalled,
    WebhookEventType.PAYMENT_DISPUTED: PaymentDisputed,
    WebhookEventType.PAYMENT_REVERSED: PaymentReversed,
    WebhookEventType.PAYMENT_FUNDS_RECEIVED: PaymentFundsReceived,
}


def build_event(
    event_type: WebhookEventType,
    payload: dict[str, Any],
    *,
    received_at: Optional[datetime] = None,
) -> PaymentWebhookEvent:
    """Build the typed event from a decoded payload, ignoring unknown keys."""
    cls = EVENT_CLASSES[event_type]
    known = {f.name for f in fields(cls)} - {"type", "received_at"}
    kwargs = {k: payload[k] for k in known if payload.get(k) is not None}
    kwargs["payment_id"] = str(payload["payment_id"])
    if "event_id" in kwargs:
        kwargs["event_id"] = str(kwargs["event_id"])
    if received_at is not None:
        kwargs["received_at"] = received_at
    return cls(type=event_type, **kwargs)
