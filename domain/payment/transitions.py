"""
Webhook event -> status update rules.

Each rule is a pure function from a typed event to the StatusUpdate command
the lifecycle must apply. TRANSITIONS covers every WebhookEventType.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from domain.payment.entity import PaymentStatus
from domain.payment.errors import classify_webhook_failure
from domain.payment.events import (
    PaymentAuthorized,
    PaymentCreditable,
    PaymentDisputed,
    PaymentExecuted,
    PaymentFailed,
    PaymentFundsReceived,
    PaymentReversed,
    PaymentSettled,
    PaymentSettlementStalled,
    PaymentWebhookEvent,
    WebhookEventType,
)


@dataclass(frozen=True)
class StatusUpdate:
    payment_id: str
    status: PaymentStatus
    metadata: dict[str, Any] = field(default_factory=dict)
    event_type: str = ""
    # log level the dispatcher uses when announcing the transition
    severity: str = "info"


def _audit(event: PaymentWebhookEvent) -> dict[str, Any]:
    return {
        "lastWebhookEventType": event.type.value,
        "lastWebhookEventId": event.event_id,
        "lastWebhookEventVersion": event.event_version,
        "webhookReceivedAt": event.received_at_iso,
    }


def _update(event: PaymentWebhookEvent, status: PaymentStatus, severity: str = "info", **extra: Any) -> StatusUpdate:
    return StatusUpdate(
        payment_id=event.payment_id,
        status=status,
        metadata={**_audit(event), **extra},
        event_type=event.type.value,
        severity=severity,
    )


def on_authorized(event: PaymentAuthorized) -> StatusUpdate:
    return _update(event, PaymentStatus.AUTHORIZED, authorizedAt=event.occurred_at(event.authorized_at))


def on_executed(event: PaymentExecuted) -> StatusUpdate:
    return _update(event, PaymentStatus.EXECUTED, executedAt=event.occurred_at(event.executed_at))


def on_creditable(event: PaymentCreditable) -> StatusUpdate:
    return _update(
        event,
        PaymentStatus.EXECUTED,
        creditableAt=event.occurred_at(event.creditable_at),
        isCredited=True,
    )


def on_funds_received(event: PaymentFundsReceived) -> StatusUpdate:
    # Funds can still be reversed at this point
    return _update(
        event,
        PaymentStatus.EXECUTED,
        fundsReceivedAt=event.occurred_at(event.funds_received_at),
        fundsReceived=True,
    )


def on_settlement_stalled(event: PaymentSettlementStalled) -> StatusUpdate:
    return _update(
        event,
        PaymentStatus.EXECUTED,
        severity="warning",
        settlementStalled=True,
        stalledAt=event.occurred_at(event.settlement_stalled_at),
        stalledThresholdSeconds=event.stalled_threshold_seconds,
    )


def on_settled(event: PaymentSettled) -> StatusUpdate:
    return _update(event, PaymentStatus.SETTLED, settledAt=event.occurred_at(event.settled_at))


def on_failed(event: PaymentFailed) -> StatusUpdate:
    failure = classify_webhook_failure(event.failure_reason, event.failure_stage)
    return _update(
        event,
        PaymentStatus.FAILED,
        severity="error",
        failedAt=event.occurred_at(event.failed_at),
        failureReason=event.failure_reason,
        failureStage=event.failure_stage,
        errorCode=failure.code.value,
        userMessage=failure.user_message,
    )


def on_disputed(event: PaymentDisputed) -> StatusUpdate:
    return _update(
        event,
        PaymentStatus.FAILED,
        severity="error",
        disputed=True,
        disputedAt=event.occurred_at(event.disputed_at),
        disputeReason=event.dispute_reason,
    )


def on_reversed(event: PaymentReversed) -> StatusUpdate:
    return _update(
        event,
        PaymentStatus.FAILED,
        severity="error",
        reversed=True,
        reversedAt=event.occurred_at(event.reversed_at),
        reversalReason=event.reversal_reason,
    )


TRANSITIONS: dict[WebhookEventType, Callable[[Any], StatusUpdate]] = {
    WebhookEventType.PAYMENT_AUTHORIZED: on_authorized,
    WebhookEventType.PAYMENT_EXECUTED: on_executed,
    WebhookEventType.PAYMENT_CREDITABLE: on_creditable,
    WebhookEventType.PAYMENT_FUNDS_RECEIVED: on_funds_received,
    WebhookEventType.PAYMENT_SETTLEMENT_STALLED: on_settlement_stalled,
    WebhookEventType.PAYMENT_SETTLED: on_settled,
    WebhookEventType.PAYMENT_FAILED: on_failed,
    WebhookEventType.PAYMENT_DISPUTED: on_disputed,
    WebhookEventType.PAYMENT_REVERSED: on_reversed,
}
