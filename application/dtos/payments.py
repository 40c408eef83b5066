"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class CreatePaymentRequest(BaseModel):
    """Inbound creation request.

    Fields are untyped; PaymentService checks them and raises
    VALIDATION_ERROR.
    """
    amount: Any = None
    provider_id: Any = None
    currency: Any = None
    metadata: Any = None


class CreatePaymentResult(BaseModel):
    success: bool = True
    payment_id: str = Field(serialization_alias="paymentId")
    hpp_url: str = Field(serialization_alias="hppUrl")

    model_config = ConfigDict(populate_by_name=True)


class ProviderPayment(BaseModel):
    """Provider response to payment creation."""
    id: str
    status: str
    resource_token: Optional[str] = None
    user_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class ProviderPaymentStatus(BaseModel):
    """Provider response to a status poll."""
    id: str
    status: str
    amount_in_minor: int
    currency: str
    created_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class PaymentView(BaseModel):
    """Stored payment record as returned by the read endpoint."""
    payment_id: str = Field(serialization_alias="paymentId")
    amount: int
    currency: str
    status: str
    hpp_url: Optional[str] = Field(default=None, serialization_alias="hppUrl")
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = Field(default=None, serialization_alias="createdAt")
    updated_at: Optional[str] = Field(default=None, serialization_alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)
