"""
Payment error taxonomy.

Maps provider HTTP failures and webhook failure reasons onto the closed
PaymentErrorCode set. Classification is pure: it never raises and always
returns a populated result.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import DEFAULT_USER_MESSAGE, PaymentErrorCode


class PaymentError(BusinessException):
    """Domain error raised for every payment failure path.

    `message` is the internal description (logged); `user_message` is the only
    text that may reach the caller.
    """

    def __init__(
        self,
        code: PaymentErrorCode,
        message: str,
        *,
        http_status: int = 500,
        retryable: bool = False,
        user_message: Optional[str] = None,
        original_error: Any = None,
        payment_id: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> None:
        self.http_status = http_status
        self.retryable = retryable
        self.user_message = user_message or DEFAULT_USER_MESSAGE
        self.original_error = original_error
        self.payment_id = payment_id
        self.timestamp = timestamp or datetime.now(timezone.utc).isoformat()
        details: dict[str, Any] = {"retryable": retryable}
        if payment_id:
            details["payment_id"] = payment_id
        super().__init__(
            code=code,
            message=message,
            error_type="PaymentError",
            details=details,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.user_message,
            "retryable": self.retryable,
            "payment_id": self.payment_id,
            "http_status": self.http_status,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class _Baseline:
    code: PaymentErrorCode
    retryable: bool
    user_message: str


_STATUS_BASELINE: dict[int, _Baseline] = {
    400: _Baseline(
        PaymentErrorCode.INVALID_PAYMENT_REQUEST, False,
        "The payment request is invalid. Please check your details.",
    ),
    401: _Baseline(
        PaymentErrorCode.AUTH_FAILED, True,
        "Authentication failed. Please try again.",
    ),
    403: _Baseline(
        PaymentErrorCode.INVALID_CREDENTIALS, False,
        "Access denied. Please contact support.",
    ),
    404: _Baseline(
        PaymentErrorCode.PAYMENT_CREATION_FAILED, False,
        "Payment resource not found.",
    ),
    409: _Baseline(
        PaymentErrorCode.PAYMENT_CREATION_FAILED, False,
        "A conflict occurred. This payment may already exist.",
    ),
    422: _Baseline(
        PaymentErrorCode.VALIDATION_ERROR, False,
        "The payment details provided are invalid.",
    ),
    429: _Baseline(
        PaymentErrorCode.RATE_LIMIT_EXCEEDED, True,
        "Too many requests. Please try again in a moment.",
    ),
    500: _Baseline(
        PaymentErrorCode.SERVICE_UNAVAILABLE, True,
        "The payment service is temporarily unavailable. Please try again later.",
    ),
    504: _Baseline(
        PaymentErrorCode.PAYMENT_TIMEOUT, True,
        "The request timed out. Please try again.",
    ),
}
_STATUS_BASELINE[502] = _STATUS_BASELINE[500]
_STATUS_BASELINE[503] = _STATUS_BASELINE[500]

_UNKNOWN_BASELINE = _Baseline(
    PaymentErrorCode.UNKNOWN_ERROR, True,
    "An unexpected error occurred. Please try again.",
)


def _type_override(error_type: str) -> Optional[_Baseline]:
    if "insufficient_funds" in error_type:
        return _Baseline(
            PaymentErrorCode.INSUFFICIENT_FUNDS, False,
            "Insufficient funds available for this payment.",
        )
    if "provider_" in error_type or "bank_" in error_type:
        return _Baseline(
            PaymentErrorCode.PROVIDER_NOT_AVAILABLE, True,
            "The selected bank provider is currently unavailable.",
        )
    if "cancelled" in error_type or "rejected" in error_type:
        return _Baseline(
            PaymentErrorCode.USER_CANCELLED, False,
            "The payment was cancelled.",
        )
    return None


def classify_provider_error(
    http_status: Optional[int],
    provider_error_type: Optional[str] = None,
    raw_message: Optional[str] = None,
    *,
    payment_id: Optional[str] = None,
    original_error: Any = None,
) -> PaymentError:
    """Classify a provider HTTP failure.

    The status table gives the baseline; a matching provider error type
    overrides it.
    """
    status = http_status or 500
    outcome = _STATUS_BASELINE.get(status, _UNKNOWN_BASELINE)
    override = _type_override(provider_error_type or "")
    if override is not None:
        outcome = override
    return PaymentError(
        outcome.code,
        raw_message or "Unknown error",
        http_status=status,
        retryable=outcome.retryable,
        user_message=outcome.user_message,
        original_error=original_error,
        payment_id=payment_id,
    )


@dataclass(frozen=True)
class WebhookFailure:
    code: PaymentErrorCode
    user_message: str


def classify_webhook_failure(
    failure_reason: Optional[str] = None,
    failure_stage: Optional[str] = None,
) -> WebhookFailure:
    reason = (failure_reason or "").lower()
    stage = (failure_stage or "").lower()

    if "insufficient_funds" in reason or "nsf" in reason:
        return WebhookFailure(
            PaymentErrorCode.INSUFFICIENT_FUNDS,
            "The payment failed due to insufficient funds.",
        )
    if "canceled" in reason or "cancelled" in reason or "rejected" in reason:
        return WebhookFailure(
            PaymentErrorCode.USER_CANCELLED,
            "The payment was cancelled or rejected.",
        )
    if "timeout" in reason or "expired" in reason:
        return WebhookFailure(
            PaymentErrorCode.PAYMENT_TIMEOUT,
            "The payment request timed out.",
        )
    if "authorization" in stage:
        return WebhookFailure(
            PaymentErrorCode.AUTHORIZATION_FAILED,
            "Payment authorization failed. Please try again.",
        )
    if "execution" in stage:
        return WebhookFailure(
            PaymentErrorCode.PAYMENT_EXECUTION_FAILED,
            "Payment execution failed. Please contact support.",
        )
    return WebhookFailure(
        PaymentErrorCode.PAYMENT_REJECTED,
        "The payment was rejected. Please try a different payment method.",
    )


__all__ = [
    "PaymentError",
    "WebhookFailure",
    "classify_provider_error",
    "classify_webhook_failure",
]
