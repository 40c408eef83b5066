"""
Payment error codes and provider status vocabulary.

The error code set is closed: every failure path in the service resolves to
exactly one of these values.
"""
from __future__ import annotations

from enum import Enum


class PaymentErrorCode(str, Enum):
    # Authentication
    AUTH_FAILED = "AUTH_FAILED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"

    # Payment creation
    PAYMENT_CREATION_FAILED = "PAYMENT_CREATION_FAILED"
    INVALID_PAYMENT_REQUEST = "INVALID_PAYMENT_REQUEST"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    PROVIDER_NOT_AVAILABLE = "PROVIDER_NOT_AVAILABLE"

    # Authorization flow
    AUTHORIZATION_FAILED = "AUTHORIZATION_FAILED"
    AUTHORIZATION_TIMEOUT = "AUTHORIZATION_TIMEOUT"
    USER_CANCELLED = "USER_CANCELLED"

    # Execution
    PAYMENT_EXECUTION_FAILED = "PAYMENT_EXECUTION_FAILED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    PAYMENT_TIMEOUT = "PAYMENT_TIMEOUT"

    # Webhooks
    WEBHOOK_VERIFICATION_FAILED = "WEBHOOK_VERIFICATION_FAILED"
    WEBHOOK_PROCESSING_FAILED = "WEBHOOK_PROCESSING_FAILED"

    # Persistence
    STORE_ERROR = "STORE_ERROR"

    # Network
    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Generic
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


DEFAULT_USER_MESSAGE = "An error occurred while processing your payment."
