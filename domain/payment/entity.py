"""
Payment domain entity - the payment aggregate and its lifecycle rules.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    """Lifecycle states, declared in forward order."""
    AUTHORIZATION_REQUIRED = "authorization_required"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    EXECUTED = "executed"
    SETTLED = "settled"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)


_ORDER = [
    PaymentStatus.AUTHORIZATION_REQUIRED,
    PaymentStatus.AUTHORIZING,
    PaymentStatus.AUTHORIZED,
    PaymentStatus.EXECUTED,
    PaymentStatus.SETTLED,
]


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    """Status may stay put, move forward, or drop into FAILED.

    FAILED is absorbing. SETTLED only leaves towards FAILED (dispute/reversal).
    """
    if current == PaymentStatus.FAILED:
        return target == PaymentStatus.FAILED
    if target == PaymentStatus.FAILED:
        return True
    return target.rank >= current.rank


def sanitize_metadata(data: Any) -> Any:
    """Drop None values recursively; empty mappings collapse to None."""
    if data is None:
        return None
    if isinstance(data, (list, tuple)):
        return [item for item in (sanitize_metadata(v) for v in data) if item is not None]
    if isinstance(data, dict):
        cleaned = {}
        for key, value in data.items():
            value = sanitize_metadata(value)
            if value is not None:
                cleaned[key] = value
        return cleaned or None
    return data


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class StatusChange:
    status: PaymentStatus
    at: datetime
    source: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "at": self.at.isoformat(), "source": self.source}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusChange":
        return cls(
            status=PaymentStatus(data["status"]),
            at=_ensure_utc(datetime.fromisoformat(data["at"])),
            source=data.get("source"),
        )


@dataclass
class Payment:
    """
    Payment aggregate.

    Rules:
    1. amount is a positive minor-unit integer and never changes
    2. currency is ISO-4217 alpha-3 and never changes
    3. hpp_url is set once and never cleared
    4. status only moves as allowed by can_transition
    5. metadata holds no None values
    """

    id: str
    amount: int
    currency: str
    status: PaymentStatus
    hpp_url: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    status_history: list[StatusChange] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id:
            raise DomainValidationException("Payment id is required", field="id")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise DomainValidationException(
                f"Payment amount must be a positive integer: {self.amount}",
                field="amount",
            )
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.currency = self.currency.upper()
        self.status = PaymentStatus(self.status)
        self.metadata = sanitize_metadata(self.metadata) or {}
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        if not self.status_history:
            self.status_history = [
                StatusChange(self.status, self.created_at or datetime.now(timezone.utc), "create")
            ]

    def apply_status(self, status: PaymentStatus, *, source: Optional[str] = None) -> bool:
        """Move to `status` if allowed. Returns whether the status changed."""
        if not can_transition(self.status, status):
            return False
        now = datetime.now(timezone.utc)
        changed = status != self.status
        if changed:
            self.status = status
            self.status_history.append(StatusChange(status, now, source))
        self.updated_at = now
        return changed

    def merge_metadata(self, patch: Optional[dict]) -> None:
        """Last writer wins per key."""
        cleaned = sanitize_metadata(patch)
        if not cleaned:
            return
        self.metadata.update(cleaned)
        self.updated_at = datetime.now(timezone.utc)

    def to_document(self) -> dict[str, Any]:
        return {
            "paymentId": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
            "hppUrl": self.hpp_url,
            "metadata": self.metadata,
            "statusHistory": [c.to_dict() for c in self.status_history],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Payment":
        created = doc.get("createdAt")
        updated = doc.get("updatedAt")
        return cls(
            id=doc["paymentId"],
            amount=int(doc["amount"]),
            currency=doc["currency"],
            status=PaymentStatus(doc["status"]),
            hpp_url=doc.get("hppUrl"),
            metadata=doc.get("metadata") or {},
            status_history=[StatusChange.from_dict(c) for c in doc.get("statusHistory") or []],
            created_at=datetime.fromisoformat(created) if created else None,
            updated_at=datetime.fromisoformat(updated) if updated else None,
        )
