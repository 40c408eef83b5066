import json

import httpx
import pytest

from domain.payment.errors import PaymentError
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.signing import verify_signature
from infrastructure.external.payments.truelayer_client import TOKEN_TTL_SECONDS, TrueLayerClient
from shared.codes.payment_codes import PaymentErrorCode


def _client(tl_settings, provider, retry, **kwargs) -> TrueLayerClient:
    return TrueLayerClient(tl_settings, retry=retry, transport=provider.transport(), **kwargs)


@pytest.mark.asyncio
async def test_token_is_cached(tl_settings, fake_provider, no_wait_retry):
    now = [1000.0]
    client = _client(tl_settings, fake_provider, no_wait_retry, clock=lambda: now[0])
    assert await client.get_access_token() == "tok-1"
    assert await client.get_access_token() == "tok-1"
    assert len(fake_provider.calls("/connect/token")) == 1

    now[0] += TOKEN_TTL_SECONDS + 1
    await client.get_access_token()
    assert len(fake_provider.calls("/connect/token")) == 2

    form = dict(x.split("=") for x in fake_provider.calls("/connect/token")[0].content.decode().split("&"))
    assert form["grant_type"] == "client_credentials"
    assert form["scope"] == "payments"
    await client.aclose()


@pytest.mark.asyncio
async def test_token_failure_is_auth_failed(tl_settings, fake_provider, no_wait_retry):
    fake_provider.fail("/connect/token", 401, {"error": "invalid_client"})
    client = _client(tl_settings, fake_provider, no_wait_retry)
    with pytest.raises(PaymentError) as info:
        await client.get_access_token()
    assert info.value.code == PaymentErrorCode.AUTH_FAILED
    assert info.value.http_status == 401
    assert info.value.retryable is True
    assert len(fake_provider.calls("/connect/token")) == 3


@pytest.mark.asyncio
async def test_create_payment_sends_signed_body(tl_settings, fake_provider, no_wait_retry, signing_key):
    client = _client(tl_settings, fake_provider, no_wait_retry)
    payment = await client.create_payment(1000, "EUR", "mock-payments-de-redirect", {"order": "o-1"}, idempotency_key="idem-1")
    assert payment.id == "pay_1"
    assert payment.status == "authorization_required"
    assert payment.user_id == "u_1"

    (request,) = fake_provider.calls("/v3/payments")
    body = json.loads(request.content)
    assert body["amount_in_minor"] == 1000
    assert body["payment_method"]["provider_selection"]["provider_id"] == "mock-payments-de-redirect"
    assert body["payment_method"]["provider_selection"]["scheme_selection"]["scheme_id"] == "sepa_credit_transfer"
    assert body["payment_method"]["beneficiary"]["merchant_account_id"] == "ma-test"
    assert body["metadata"] == {"order": "o-1"}
    assert request.headers["Authorization"] == "Bearer tok-1"
    assert request.headers["Idempotency-Key"] == "idem-1"

    verify_signature(
        jwks=signing_key.jwks,
        signature=request.headers["Tl-Signature"],
        method="POST",
        path="/v3/payments",
        headers=dict(request.headers),
        body=request.content,
    )


@pytest.mark.asyncio
async def test_create_payment_reuses_idempotency_key_across_retries(tl_settings, no_wait_retry, signing_key):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/connect/token":
            return httpx.Response(200, json={"access_token": "tok"})
        seen.append(request.headers["Idempotency-Key"])
        if len(seen) < 2:
            return httpx.Response(503, json={"title": "Service Unavailable"})
        return httpx.Response(201, json={"id": "pay_2", "status": "authorization_required"})

    client = TrueLayerClient(tl_settings, retry=no_wait_retry, transport=httpx.MockTransport(handler))
    payment = await client.create_payment(500, "EUR", "bank")
    assert payment.id == "pay_2"
    assert len(seen) == 2 and seen[0] == seen[1]


@pytest.mark.asyncio
async def test_create_payment_classifies_provider_error(tl_settings, fake_provider, no_wait_retry):
    fake_provider.fail("/v3/payments", 400, {"type": "insufficient_funds", "detail": "Not enough"})
    client = _client(tl_settings, fake_provider, no_wait_retry)
    with pytest.raises(PaymentError) as info:
        await client.create_payment(1000, "EUR", "bank")
    assert info.value.code == PaymentErrorCode.INSUFFICIENT_FUNDS
    assert info.value.retryable is False
    assert info.value.message == "Not enough"


@pytest.mark.asyncio
async def test_create_payment_timeout(tl_settings, no_wait_retry):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/connect/token":
            return httpx.Response(200, json={"access_token": "tok"})
        raise httpx.ReadTimeout("timed out", request=request)

    client = TrueLayerClient(tl_settings, retry=no_wait_retry, transport=httpx.MockTransport(handler))
    with pytest.raises(PaymentError) as info:
        await client.create_payment(1000, "EUR", "bank")
    assert info.value.code == PaymentErrorCode.PAYMENT_TIMEOUT
    assert info.value.retryable is True


@pytest.mark.asyncio
async def test_create_payment_without_signing_key(tl_settings, fake_provider, no_wait_retry):
    cfg = tl_settings.model_copy(update={"private_key": None})
    client = _client(cfg, fake_provider, no_wait_retry)
    with pytest.raises(PaymentError) as info:
        await client.create_payment(1000, "EUR", "bank")
    assert info.value.code == PaymentErrorCode.CONFIGURATION_ERROR
    assert fake_provider.calls("/v3/payments") == []


@pytest.mark.asyncio
async def test_authorization_flow_returns_redirect(tl_settings, fake_provider, no_wait_retry):
    client = _client(tl_settings, fake_provider, no_wait_retry)
    uri = await client.start_authorization_flow("pay_1", "https://merchant/cb")
    assert uri == "https://hpp.test/pay_1"
    (request,) = fake_provider.calls("/v3/payments/pay_1/authorization-flow")
    assert json.loads(request.content) == {"redirect": {"return_uri": "https://merchant/cb"}}
    assert "Tl-Signature" in request.headers


@pytest.mark.asyncio
async def test_authorization_flow_without_redirect(tl_settings, fake_provider, no_wait_retry):
    fake_provider.next_action = {"type": "provider_selection"}
    client = _client(tl_settings, fake_provider, no_wait_retry)
    with pytest.raises(PaymentError) as info:
        await client.start_authorization_flow("pay_1", "https://merchant/cb")
    assert info.value.code == PaymentErrorCode.AUTHORIZATION_FAILED
    assert info.value.http_status == 500
    assert info.value.retryable is False
    assert info.value.payment_id == "pay_1"
    assert "provider_selection" in info.value.message


@pytest.mark.asyncio
async def test_payment_status(tl_settings, fake_provider, no_wait_retry):
    fake_provider.payment_status = "executed"
    client = _client(tl_settings, fake_provider, no_wait_retry)
    status = await client.get_payment_status("pay_1")
    assert status.status == "executed"
    assert status.amount_in_minor == 1000
    assert status.currency == "EUR"


@pytest.mark.asyncio
async def test_payment_status_failure(tl_settings, fake_provider, no_wait_retry):
    fake_provider.fail("/v3/payments/pay_1", 404, {"title": "Not Found"})
    client = _client(tl_settings, fake_provider, no_wait_retry)
    with pytest.raises(PaymentError) as info:
        await client.get_payment_status("pay_1")
    assert info.value.code == PaymentErrorCode.PAYMENT_CREATION_FAILED
    assert info.value.retryable is True
    assert info.value.http_status == 404
    assert info.value.payment_id == "pay_1"


@pytest.mark.asyncio
async def test_webhook_signature_jku_not_allowed_is_not_fetched(tl_settings, fake_provider, no_wait_retry, signing_key):
    from infrastructure.external.payments.signing import sign_request

    body = b'{"type":"payment_settled"}'
    signature = sign_request(
        kid=signing_key.kid,
        private_key_pem=signing_key.pem,
        method="POST",
        path="/hook",
        body=body,
        jku="https://evil.example.com/.well-known/jwks",
    )
    client = _client(tl_settings, fake_provider, no_wait_retry)
    assert await client.verify_webhook_signature(signature, body, "/hook", {}) is False
    assert fake_provider.requests == []


@pytest.mark.asyncio
async def test_webhook_signature_verified_against_fetched_jwks(tl_settings, fake_provider, no_wait_retry, signing_key):
    from infrastructure.external.payments.signing import sign_request

    body = b'{"type":"payment_settled"}'
    headers = {"X-Tl-Webhook-Timestamp": "2024-01-01T00:00:00Z"}
    signature = sign_request(
        kid=signing_key.kid,
        private_key_pem=signing_key.pem,
        method="POST",
        path="/hook",
        headers=headers,
        body=body,
        jku="https://webhooks.truelayer-sandbox.com/.well-known/jwks",
    )
    client = _client(tl_settings, fake_provider, no_wait_retry)
    assert await client.verify_webhook_signature(signature, body, "/hook", headers) is True
    assert await client.verify_webhook_signature(signature, body + b" ", "/hook", headers) is False
    assert await client.verify_webhook_signature("garbage", body, "/hook", headers) is False


def test_factory_builds_truelayer_client():
    gw = get_payment_gateway("truelayer")
    assert isinstance(gw, TrueLayerClient)
    with pytest.raises(ValueError):
        get_payment_gateway("stripe")
