"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import PaymentGateway
from infrastructure.external.payments.retry import RetryPolicy


def get_payment_gateway(
    provider: Optional[str] = None,
    *,
    cfg: Optional[PaymentSettings] = None,
    **kwargs,
) -> PaymentGateway:
    cfg = cfg or payment_settings
    name = (provider or "truelayer").lower()
    if name in {"truelayer", "tl"}:
        from .truelayer_client import TrueLayerClient
        kwargs.setdefault("retry", RetryPolicy.from_settings(cfg.retry))
        return TrueLayerClient(cfg.truelayer, timeouts=cfg.timeouts, webhook=cfg.webhook, **kwargs)
    raise ValueError(f"Unsupported payment provider: {name}")
