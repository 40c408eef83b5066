"""
Translate provider transport/HTTP failures into PaymentError via the taxonomy.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from domain.payment.errors import PaymentError, classify_provider_error


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def parse_provider_error(exc: BaseException, payment_id: Optional[str] = None) -> PaymentError:
    """Build a PaymentError from any exception raised by a provider call.

    Provider problem+json bodies carry `type`, `title`, `detail` and
    optionally an `errors` list; the first entry wins when present.
    """
    if isinstance(exc, PaymentError):
        return exc

    status: Optional[int] = None
    error_type: Optional[str] = None
    message: Optional[str] = None

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        data = _error_body(exc.response)
        errors = data.get("errors")
        first = errors[0] if isinstance(errors, list) and errors and isinstance(errors[0], dict) else {}
        error_type = data.get("type") or first.get("type")
        message = first.get("error_description") or data.get("detail") or data.get("title")
    elif isinstance(exc, httpx.TimeoutException):
        status = 504

    return classify_provider_error(
        status,
        error_type,
        message or str(exc) or "Unknown error",
        payment_id=payment_id,
        original_error=exc,
    )


def response_status(exc: BaseException) -> int:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return 500
