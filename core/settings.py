"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so provider credentials live in one
place, e.g. TRUELAYER__CLIENT_ID, RETRY__MAX_ATTEMPTS, STORE__BACKEND.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


class PaymentTimeouts(BaseModel):
    # seconds, per outbound call
    token: float = 10.0
    create_payment: float = 30.0
    authorization_flow: float = 15.0
    payment_status: float = 10.0
    jwks: float = 10.0


class PaymentRetry(BaseModel):
    max_attempts: int = 5
    initial_delay_ms: int = 2000
    backoff_multiplier: float = 2
    max_delay_ms: int = 60000
    should_retry_errors: bool = True


class WebhookSettings(BaseModel):
    allowed_jkus: list[str] = Field(
        default_factory=lambda: [
            "https://webhooks.truelayer.com/.well-known/jwks",
            "https://webhooks.truelayer-sandbox.com/.well-known/jwks",
        ]
    )


class DemoPayer(BaseModel):
    name: str = "Demo User"
    email: str = "demo-user@example.com"
    phone: Optional[str] = "+448081648350"


class TrueLayerSettings(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    # PEM text, or a path to a PEM file
    private_key: Optional[str] = None
    key_id: Optional[str] = None
    merchant_account_id: Optional[str] = None
    merchant_currency: str = "EUR"
    api_url: str = "https://api.truelayer-sandbox.com"
    auth_url: str = "https://auth.truelayer-sandbox.com"
    callback_url: Optional[str] = None
    frontend_url: Optional[str] = None
    scheme_id: str = "sepa_credit_transfer"
    payer: DemoPayer = Field(default_factory=DemoPayer)

    @field_validator("private_key")
    @classmethod
    def _load_private_key(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return v
        if "BEGIN" not in v:
            p = Path(v)
            if p.exists():
                return p.read_text(encoding="utf-8")
        # Keys passed through env files usually carry escaped newlines
        return v.replace("\\n", "\n")


class StoreSettings(BaseModel):
    backend: str = "memory"  # memory, redis
    namespace: str = "payments"


class PaymentSettings(BaseSettings):
    truelayer: TrueLayerSettings = Field(default_factory=TrueLayerSettings)
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
