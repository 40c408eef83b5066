"""
Unified response envelopes.
"""
from typing import Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone
from shared.codes import BusinessCode

from domain.payment.errors import PaymentError


T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Error details"""
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """UTC ISO8601 with a trailing Z"""
        ts = timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)
        s = ts.isoformat()
        return s.replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    """Unified response model"""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


class PaymentErrorDetails(BaseModel):
    retryable: bool
    paymentId: Optional[str] = None


class PaymentErrorBody(BaseModel):
    """Envelope for payment failures: only the user-facing message leaves the service."""
    code: str
    message: str
    retryable: bool
    details: PaymentErrorDetails


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS
) -> Response:
    """
    Build a success response.

    Args:
        data: payload
        message: success message
        code: business code

    Returns:
        Response: unified envelope
    """
    return Response(
        code=code,
        message=message,
        data=data,
        error=None
    )


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None
) -> Response:
    """
    Build an error response.

    Args:
        code: business code
        message: error message
        error_type: error type
        details: error details
        field: offending field
        request_id: request id

    Returns:
        Response: unified envelope
    """
    return Response(
        code=code,
        message=message,
        data=None,
        error=ErrorDetail(
            type=error_type,
            details=details,
            field=field,
            request_id=request_id
        )
    )


def payment_error_response(exc: PaymentError) -> PaymentErrorBody:
    return PaymentErrorBody(
        code=exc.code.value,
        message=exc.user_message,
        retryable=exc.retryable,
        details=PaymentErrorDetails(retryable=exc.retryable, paymentId=exc.payment_id),
    )
