"""Shared fixtures for payment tests: a throwaway P-521 key and a fake provider API."""
import json
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm

from core.settings import TrueLayerSettings
from infrastructure.external.payments.retry import RetryPolicy


SANDBOX_JKU = "https://webhooks.truelayer-sandbox.com/.well-known/jwks"
API_URL = "https://api.test-provider.com"
AUTH_URL = "https://auth.test-provider.com"


@dataclass
class SigningKey:
    kid: str
    pem: str
    jwks: dict


@pytest.fixture(scope="session")
def signing_key() -> SigningKey:
    key = ec.generate_private_key(ec.SECP521R1())
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    jwk = ECAlgorithm.to_jwk(key.public_key(), as_dict=True)
    jwk["kid"] = "test-kid"
    return SigningKey(kid="test-kid", pem=pem, jwks={"keys": [jwk]})


@pytest.fixture
def tl_settings(signing_key) -> TrueLayerSettings:
    return TrueLayerSettings(
        client_id="client-id",
        client_secret="client-secret",
        private_key=signing_key.pem,
        key_id=signing_key.kid,
        merchant_account_id="ma-test",
        api_url=API_URL,
        auth_url=AUTH_URL,
        callback_url="https://merchant.example.com/api/v1/payments/callback",
        frontend_url="https://shop.example.com",
    )


@pytest.fixture
def no_wait_retry():
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    policy = RetryPolicy(max_attempts=3, initial_delay_ms=10, backoff_multiplier=2, max_delay_ms=100, sleep=_sleep)
    policy.delays = delays
    return policy


@dataclass
class FakeProvider:
    """In-process stand-in for the provider's auth, payments and JWKS endpoints."""

    jwks: dict
    payment_status: str = "authorized"
    next_action: dict = field(default_factory=lambda: {"type": "redirect", "uri": "https://hpp.test/pay_1"})
    failures: dict = field(default_factory=dict)
    requests: list = field(default_factory=list)

    def fail(self, path: str, status: int, body: Optional[dict[str, Any]] = None) -> None:
        self.failures[path] = (status, body or {})

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.failures:
            status, body = self.failures[path]
            return httpx.Response(status, json=body)
        if path == "/connect/token":
            return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})
        if path == "/v3/payments" and request.method == "POST":
            return httpx.Response(
                201,
                json={"id": "pay_1", "status": "authorization_required", "resource_token": "rt", "user": {"id": "u_1"}},
            )
        if path.endswith("/authorization-flow"):
            return httpx.Response(
                200,
                json={"status": "authorizing", "authorization_flow": {"actions": {"next": self.next_action}}},
            )
        if path.startswith("/v3/payments/") and request.method == "GET":
            payment_id = path.rsplit("/", 1)[-1]
            return httpx.Response(
                200,
                json={
                    "id": payment_id,
                    "status": self.payment_status,
                    "amount_in_minor": 1000,
                    "currency": "EUR",
                    "created_at": "2024-01-01T00:00:00Z",
                },
            )
        if path == "/.well-known/jwks":
            return httpx.Response(200, content=json.dumps(self.jwks))
        return httpx.Response(404, json={"title": "Not Found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_provider(signing_key) -> FakeProvider:
    return FakeProvider(jwks=signing_key.jwks)
