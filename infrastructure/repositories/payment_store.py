"""
Payment store implementations - JSON documents keyed by payment id.

Both adapters share the merge logic below; each applies a merge to its
document as one atomic step (Redis through WATCH/MULTI). Writes go through
the RetryPolicy, which also re-runs a merge that lost a race; a write that
still fails is raised as STORE_ERROR.
"""
from __future__ import annotations

import copy
from abc import abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.payment.entity import (
    Payment,
    PaymentStatus,
    StatusChange,
    can_transition,
    sanitize_metadata,
)
from domain.payment.errors import PaymentError
from domain.payment.repository import PaymentStore
from infrastructure.cache.redis_cache import RedisCache, get_redis_cache
from infrastructure.external.payments.retry import RetryPolicy
from shared.codes.payment_codes import PaymentErrorCode


logger = get_logger(__name__)

_REQUIRED_KEYS = ("paymentId", "amount", "currency", "status")


def is_complete(doc: Optional[dict[str, Any]]) -> bool:
    return bool(doc) and all(doc.get(k) is not None for k in _REQUIRED_KEYS)


def merge_created(existing: Optional[dict[str, Any]], payment: Payment) -> dict[str, Any]:
    """Fold a freshly created payment into whatever is already stored.

    A webhook can land before the creation record is written; in that case
    its status and metadata win over the creation values.
    """
    doc = payment.to_document()
    if not existing:
        return doc

    current = existing.get("status")
    history = list(existing.get("statusHistory") or [])
    if current and not can_transition(PaymentStatus(current), payment.status):
        doc["status"] = current
    elif current != doc["status"]:
        history.extend(doc["statusHistory"])
    doc["statusHistory"] = history or doc["statusHistory"]
    doc["metadata"] = {**doc["metadata"], **(existing.get("metadata") or {})}
    doc["hppUrl"] = doc["hppUrl"] or existing.get("hppUrl")
    doc["createdAt"] = existing.get("createdAt") or doc["createdAt"]
    return doc


def merge_status(
    existing: Optional[dict[str, Any]],
    payment_id: str,
    status: PaymentStatus,
    metadata_patch: Optional[dict[str, Any]] = None,
    source: Optional[str] = None,
) -> dict[str, Any]:
    """Apply a status + metadata patch to a stored document."""
    if is_complete(existing):
        payment = Payment.from_document(existing)
        payment.apply_status(status, source=source)
        payment.merge_metadata(metadata_patch)
        return payment.to_document()

    # Partial record: nothing but what updates have told us so far
    now = datetime.now(timezone.utc)
    doc = copy.deepcopy(existing) if existing else {"paymentId": payment_id, "metadata": {}, "statusHistory": []}
    current = doc.get("status")
    if current is None or can_transition(PaymentStatus(current), status):
        if current != status.value:
            doc["status"] = status.value
            doc.setdefault("statusHistory", []).append(StatusChange(status, now, source).to_dict())
    patch = sanitize_metadata(metadata_patch)
    if patch:
        doc["metadata"] = {**(doc.get("metadata") or {}), **patch}
    doc["updatedAt"] = now.isoformat()
    return doc


class DocumentPaymentStore(PaymentStore):
    """PaymentStore over any get/put document backend."""

    def __init__(self, retry: Optional[RetryPolicy] = None) -> None:
        self.retry_policy = retry or RetryPolicy()

    @abstractmethod
    async def _load(self, payment_id: str) -> Optional[dict[str, Any]]:
        ...

    @abstractmethod
    async def _mutate(
        self,
        payment_id: str,
        merge: Callable[[Optional[dict[str, Any]]], dict[str, Any]],
    ) -> dict[str, Any]:
        """Replace the document with `merge(current)` as one atomic step; return it."""
        ...

    async def _write(self, payment_id: str, op: Callable[[], Awaitable[Any]], context: str) -> Any:
        try:
            return await self.retry_policy.execute(op, f"{context} (Payment: {payment_id})")
        except PaymentError:
            raise
        except Exception as exc:
            logger.error("payment_store_write_failed", payment_id=payment_id, context=context, error=str(exc))
            raise PaymentError(
                PaymentErrorCode.STORE_ERROR,
                f"{context} failed: {exc}",
                http_status=500,
                retryable=True,
                user_message="Unable to save payment details. Please try again.",
                original_error=exc,
                payment_id=payment_id,
            ) from exc

    async def create(
        self,
        payment_id: str,
        amount: int,
        currency: str,
        status: PaymentStatus,
        hpp_url: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Payment:
        now = datetime.now(timezone.utc)
        payment = Payment(
            id=payment_id,
            amount=amount,
            currency=currency,
            status=status,
            hpp_url=hpp_url,
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )

        async def _op() -> Payment:
            doc = await self._mutate(payment_id, lambda existing: merge_created(existing, payment))
            return Payment.from_document(doc)

        stored = await self._write(payment_id, _op, "Store Payment")
        logger.info("payment_stored", payment_id=payment_id, status=stored.status.value)
        return stored

    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        metadata_patch: Optional[dict] = None,
        *,
        source: Optional[str] = None,
    ) -> None:
        async def _op() -> None:
            await self._mutate(
                payment_id,
                lambda existing: merge_status(existing, payment_id, status, metadata_patch, source),
            )

        await self._write(payment_id, _op, "Update Payment Status")
        logger.info("payment_status_stored", payment_id=payment_id, status=status.value, source=source)

    async def get(self, payment_id: str) -> Optional[Payment]:
        doc = await self._load(payment_id)
        if not is_complete(doc):
            return None
        return Payment.from_document(doc)

    async def get_document(self, payment_id: str) -> Optional[dict[str, Any]]:
        """Raw stored document, partial records included."""
        return await self._load(payment_id)


class InMemoryPaymentStore(DocumentPaymentStore):
    """Process-local store for development and tests."""

    def __init__(self, retry: Optional[RetryPolicy] = None) -> None:
        super().__init__(retry)
        self._docs: dict[str, dict[str, Any]] = {}

    async def _load(self, payment_id: str) -> Optional[dict[str, Any]]:
        doc = self._docs.get(payment_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def _mutate(self, payment_id, merge):
        # No await between read and write, so no other task can interleave
        doc = merge(copy.deepcopy(self._docs.get(payment_id)))
        self._docs[payment_id] = copy.deepcopy(doc)
        return doc


class RedisPaymentStore(DocumentPaymentStore):
    """One JSON document per payment at `<namespace>:payment:<id>`."""

    def __init__(self, cache: RedisCache, retry: Optional[RetryPolicy] = None) -> None:
        super().__init__(retry)
        self._cache = cache

    @staticmethod
    def _key(payment_id: str) -> str:
        return f"payment:{payment_id}"

    async def _load(self, payment_id: str) -> Optional[dict[str, Any]]:
        return await self._cache.get(self._key(payment_id))

    async def _mutate(self, payment_id, merge):
        # WATCH/MULTI; a concurrent writer raises WatchError and the RetryPolicy re-runs the merge
        return await self._cache.update(self._key(payment_id), merge)


async def create_payment_store(cfg: PaymentSettings, retry: Optional[RetryPolicy] = None) -> PaymentStore:
    retry = retry or RetryPolicy.from_settings(cfg.retry)
    backend = cfg.store.backend.lower()
    if backend == "memory":
        return InMemoryPaymentStore(retry)
    if backend == "redis":
        cache = await get_redis_cache(cfg.store.namespace)
        return RedisPaymentStore(cache, retry)
    raise ValueError(f"Unsupported payment store backend: {backend}")
