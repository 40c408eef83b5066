from urllib.parse import parse_qs, urlsplit

import pytest

from application.dtos.payments import CreatePaymentRequest, ProviderPayment, ProviderPaymentStatus
from application.services.payment_lifecycle import PaymentLifecycle
from application.services.payment_service import PaymentService
from domain.payment.entity import PaymentStatus
from domain.payment.errors import PaymentError, classify_provider_error
from infrastructure.repositories.payment_store import InMemoryPaymentStore
from shared.codes.payment_codes import PaymentErrorCode


class StubGateway:
    provider = "stub"

    def __init__(self, status: str = "executed", status_error: Exception | None = None):
        self.status = status
        self.status_error = status_error
        self.created = []

    async def create_payment(self, amount_in_minor, currency, provider_id, metadata=None, idempotency_key=None):
        self.created.append((amount_in_minor, currency, provider_id, metadata))
        return ProviderPayment(id="pay_1", status="authorization_required")

    async def start_authorization_flow(self, payment_id, return_uri):
        return f"https://hpp.test/{payment_id}"

    async def get_payment_status(self, payment_id):
        if self.status_error:
            raise self.status_error
        return ProviderPaymentStatus(id=payment_id, status=self.status, amount_in_minor=1000, currency="EUR")


def _service(tl_settings, gateway=None, store=None):
    store = store or InMemoryPaymentStore()
    return PaymentService(gateway or StubGateway(), PaymentLifecycle(store), tl_settings), store


@pytest.mark.asyncio
async def test_create_payment_persists_authorizing(tl_settings):
    gateway = StubGateway()
    service, store = _service(tl_settings, gateway)
    result = await service.create_payment(CreatePaymentRequest(amount=1000, provider_id="bank", metadata={"order": "o1"}))
    assert result.success is True
    assert result.payment_id == "pay_1"
    assert result.hpp_url == "https://hpp.test/pay_1"
    # currency defaults to the merchant currency
    assert gateway.created == [(1000, "EUR", "bank", {"order": "o1"})]

    payment = await store.get("pay_1")
    assert payment.status == PaymentStatus.AUTHORIZING
    assert payment.hpp_url == "https://hpp.test/pay_1"
    assert [c.status for c in payment.status_history] == [
        PaymentStatus.AUTHORIZATION_REQUIRED,
        PaymentStatus.AUTHORIZING,
    ]


@pytest.mark.asyncio
async def test_create_payment_upper_cases_currency(tl_settings):
    gateway = StubGateway()
    service, store = _service(tl_settings, gateway)
    await service.create_payment(CreatePaymentRequest(amount=250, provider_id="bank", currency="gbp"))
    assert gateway.created == [(250, "GBP", "bank", None)]
    assert (await store.get("pay_1")).currency == "GBP"


@pytest.mark.parametrize(
    "payload,user_message",
    [
        ({"amount": 1000}, "Please select a payment provider."),
        ({"amount": 0, "provider_id": "bank"}, "Please enter a valid payment amount."),
        ({"amount": 10.5, "provider_id": "bank"}, "Please enter a valid payment amount."),
        ({"amount": "100", "provider_id": "bank"}, "Please enter a valid payment amount."),
        ({"amount": True, "provider_id": "bank"}, "Please enter a valid payment amount."),
        ({"amount": 1000, "provider_id": 123}, "Please select a payment provider."),
        ({"amount": 1000, "provider_id": "  "}, "Please select a payment provider."),
        ({"amount": 1000, "provider_id": "bank", "currency": "EURO"}, "Please select a valid currency."),
        ({"amount": 1000, "provider_id": "bank", "currency": 978}, "Please select a valid currency."),
        ({"amount": 1000, "provider_id": "bank", "metadata": ["order"]}, "Invalid payment details."),
    ],
)
@pytest.mark.asyncio
async def test_create_payment_validation(tl_settings, payload, user_message):
    gateway = StubGateway()
    service, _ = _service(tl_settings, gateway)
    with pytest.raises(PaymentError) as info:
        await service.create_payment(CreatePaymentRequest(**payload))
    assert info.value.code == PaymentErrorCode.VALIDATION_ERROR
    assert info.value.http_status == 400
    assert info.value.user_message == user_message
    assert gateway.created == []


@pytest.mark.asyncio
async def test_create_payment_requires_callback_url(tl_settings):
    service, _ = _service(tl_settings.model_copy(update={"callback_url": None}))
    with pytest.raises(PaymentError) as info:
        await service.create_payment(CreatePaymentRequest(amount=100, provider_id="bank"))
    assert info.value.code == PaymentErrorCode.CONFIGURATION_ERROR
    assert info.value.http_status == 500


@pytest.mark.asyncio
async def test_persistence_failure_does_not_fail_creation(tl_settings):
    class BrokenStore(InMemoryPaymentStore):
        async def create(self, *args, **kwargs):
            raise PaymentError(PaymentErrorCode.STORE_ERROR, "down", retryable=True)

    service, _ = _service(tl_settings, store=BrokenStore())
    result = await service.create_payment(CreatePaymentRequest(amount=100, provider_id="bank"))
    assert result.payment_id == "pay_1"


@pytest.mark.asyncio
async def test_callback_redirects_with_status(tl_settings):
    service, store = _service(tl_settings, StubGateway(status="executed"))
    await store.create("pay_1", 1000, "EUR", PaymentStatus.AUTHORIZING)
    url = await service.handle_callback("pay_1")

    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}" == "https://shop.example.com"
    assert parse_qs(parts.query) == {"payment_id": ["pay_1"], "status": ["executed"], "amount": ["1000"], "currency": ["EUR"]}

    payment = await store.get("pay_1")
    assert payment.status == PaymentStatus.EXECUTED
    assert "callbackReceivedAt" in payment.metadata


@pytest.mark.asyncio
async def test_callback_cannot_regress_webhook_status(tl_settings):
    service, store = _service(tl_settings, StubGateway(status="authorized"))
    await store.create("pay_1", 1000, "EUR", PaymentStatus.SETTLED)
    await service.handle_callback("pay_1")
    assert (await store.get("pay_1")).status == PaymentStatus.SETTLED


@pytest.mark.asyncio
async def test_callback_error_redirect(tl_settings):
    error = classify_provider_error(503, None, "down", payment_id="pay_1")
    service, _ = _service(tl_settings, StubGateway(status_error=error))
    url = await service.handle_callback("pay_1")
    parts = urlsplit(url)
    assert parts.path == "/payment-result.html"
    query = parse_qs(parts.query)
    assert query["error_code"] == ["SERVICE_UNAVAILABLE"]
    assert query["error"] == [error.user_message]
    assert query["payment_id"] == ["pay_1"]


@pytest.mark.asyncio
async def test_callback_without_payment_id(tl_settings):
    service, _ = _service(tl_settings)
    query = parse_qs(urlsplit(await service.handle_callback(None)).query)
    assert query["error_code"] == ["VALIDATION_ERROR"]
    assert "payment_id" not in query


@pytest.mark.asyncio
async def test_callback_unexpected_error_uses_generic_message(tl_settings):
    service, _ = _service(tl_settings, StubGateway(status_error=RuntimeError("boom")))
    query = parse_qs(urlsplit(await service.handle_callback("pay_1")).query)
    assert query["error"] == ["An error occurred while processing your payment callback."]
    assert "error_code" not in query
