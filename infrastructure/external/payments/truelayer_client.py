"""
TrueLayer Payments API v3 adapter over httpx.

Notes on API usage:
- Client-credentials tokens come from `{auth_url}/connect/token` with the
  `payments` scope and live for an hour; we refresh after 55 minutes.
- Every POST to `/v3/payments*` carries an `Idempotency-Key` and a
  `Tl-Signature` computed over the method, path, idempotency header and the
  exact body bytes sent. The same key and signature are reused on retry.
- Webhooks are signed by the provider; the JWS header names the JWKS (`jku`)
  to verify against, which must be on the allow-list before it is fetched.
"""
from __future__ import annotations

import json
import time
import uuid
from typing import Any, Callable, Mapping, Optional

import httpx

from application.dtos.payments import ProviderPayment, ProviderPaymentStatus
from core.logging_config import get_logger
from core.settings import PaymentTimeouts, TrueLayerSettings, WebhookSettings
from domain.payment.errors import PaymentError
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import parse_provider_error, response_status
from infrastructure.external.payments.retry import RetryPolicy
from infrastructure.external.payments.signing import (
    extract_jws_header,
    sign_request,
    verify_signature,
)
from shared.codes.payment_codes import PaymentErrorCode


logger = get_logger(__name__)

TOKEN_TTL_SECONDS = 55 * 60


class TrueLayerClient(BasePaymentClient):
    provider = "truelayer"

    def __init__(
        self,
        cfg: TrueLayerSettings,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        webhook: Optional[WebhookSettings] = None,
        retry: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(retry=retry, http_client=http_client, transport=transport)
        self.cfg = cfg
        self.timeouts = timeouts or PaymentTimeouts()
        self.allowed_jkus = list((webhook or WebhookSettings()).allowed_jkus)
        self._clock = clock
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0

    # ---- auth -------------------------------------------------------------

    async def get_access_token(self) -> str:
        now = self._clock()
        if self._access_token and now < self._token_expiry:
            return self._access_token

        async def _fetch() -> str:
            resp = await self._send(
                "POST",
                f"{self.cfg.auth_url.rstrip('/')}/connect/token",
                timeout=self.timeouts.token,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.cfg.client_id or "",
                    "client_secret": self.cfg.client_secret or "",
                    "scope": "payments",
                },
            )
            token = resp.json()["access_token"]
            self._access_token = token
            self._token_expiry = now + TOKEN_TTL_SECONDS
            return token

        try:
            return await self._retry(_fetch, "Get Access Token")
        except Exception as exc:
            logger.error("access_token_failed", provider=self.provider, error=str(exc))
            raise PaymentError(
                PaymentErrorCode.AUTH_FAILED,
                "Failed to authenticate with TrueLayer",
                http_status=response_status(exc),
                retryable=True,
                user_message="Authentication failed. Please try again later.",
                original_error=exc,
            ) from exc

    # ---- signing helpers --------------------------------------------------

    def _signed_headers(self, token: str, path: str, body: bytes, idempotency_key: str) -> dict[str, str]:
        if not self.cfg.private_key or not self.cfg.key_id:
            raise PaymentError(
                PaymentErrorCode.CONFIGURATION_ERROR,
                "Request signing key is not configured",
                http_status=500,
                user_message="Payment service is not configured correctly.",
            )
        signature = sign_request(
            kid=self.cfg.key_id,
            private_key_pem=self.cfg.private_key,
            method="POST",
            path=path,
            headers={"Idempotency-Key": idempotency_key},
            body=body,
        )
        return {
            "Authorization": f"Bearer {token}",
            "Idempotency-Key": idempotency_key,
            "Content-Type": "application/json",
            "Tl-Signature": signature,
        }

    def _url(self, path: str) -> str:
        return f"{self.cfg.api_url.rstrip('/')}{path}"

    @staticmethod
    def _encode(body: dict[str, Any]) -> bytes:
        return json.dumps(body, separators=(",", ":")).encode("utf-8")

    # ---- payments ---------------------------------------------------------

    def _payment_body(
        self,
        amount_in_minor: int,
        currency: str,
        provider_id: str,
        metadata: Optional[dict[str, Any]],
    ) -> dict[str, Any]:
        payer = self.cfg.payer
        user: dict[str, Any] = {"name": payer.name, "email": payer.email}
        if payer.phone:
            user["phone"] = payer.phone
        return {
            "amount_in_minor": amount_in_minor,
            "currency": currency,
            "payment_method": {
                "type": "bank_transfer",
                "provider_selection": {
                    "type": "preselected",
                    "provider_id": provider_id,
                    "scheme_selection": {
                        "type": "preselected",
                        "scheme_id": self.cfg.scheme_id,
                    },
                },
                "beneficiary": {
                    "type": "merchant_account",
                    "merchant_account_id": self.cfg.merchant_account_id,
                },
            },
            "user": user,
            "metadata": metadata or {},
        }

    async def create_payment(
        self,
        amount_in_minor: int,
        currency: str,
        provider_id: str,
        metadata: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> ProviderPayment:
        token = await self.get_access_token()
        path = "/v3/payments"
        body = self._encode(self._payment_body(amount_in_minor, currency, provider_id, metadata))
        headers = self._signed_headers(token, path, body, idempotency_key or str(uuid.uuid4()))

        async def _post() -> ProviderPayment:
            resp = await self._send(
                "POST", self._url(path), timeout=self.timeouts.create_payment, content=body, headers=headers
            )
            data = resp.json()
            return ProviderPayment(
                id=data["id"],
                status=data.get("status", "authorization_required"),
                resource_token=data.get("resource_token"),
                user_id=(data.get("user") or {}).get("id"),
            )

        try:
            payment = await self._retry(_post, f"Create Payment (Provider: {provider_id})")
        except PaymentError:
            raise
        except Exception as exc:
            logger.error("payment_create_failed", provider=self.provider, provider_id=provider_id, error=str(exc))
            raise parse_provider_error(exc) from exc
        self._log("payment_created", payment_id=payment.id, status=payment.status)
        return payment

    async def start_authorization_flow(self, payment_id: str, return_uri: str) -> str:
        token = await self.get_access_token()
        path = f"/v3/payments/{payment_id}/authorization-flow"
        body = self._encode({"redirect": {"return_uri": return_uri}})
        headers = self._signed_headers(token, path, body, str(uuid.uuid4()))
        self._log("authorization_flow_start", payment_id=payment_id, return_uri=return_uri)

        async def _post() -> str:
            resp = await self._send(
                "POST", self._url(path), timeout=self.timeouts.authorization_flow, content=body, headers=headers
            )
            data = resp.json()
            next_action = ((data.get("authorization_flow") or {}).get("actions") or {}).get("next") or {}
            if next_action.get("type") == "redirect" and next_action.get("uri"):
                return next_action["uri"]
            raise PaymentError(
                PaymentErrorCode.AUTHORIZATION_FAILED,
                f"No HPP redirect URL returned. Next action was '{next_action.get('type') or 'unknown'}'.",
                http_status=500,
                retryable=False,
                user_message="Unable to start payment authorization. Please try again.",
                original_error=data,
                payment_id=payment_id,
            )

        try:
            return await self._retry(_post, f"Start Authorization Flow (Payment: {payment_id})")
        except PaymentError:
            raise
        except Exception as exc:
            logger.error("authorization_flow_failed", provider=self.provider, payment_id=payment_id, error=str(exc))
            raise parse_provider_error(exc, payment_id=payment_id) from exc

    async def get_payment_status(self, payment_id: str) -> ProviderPaymentStatus:
        token = await self.get_access_token()

        async def _get() -> ProviderPaymentStatus:
            resp = await self._send(
                "GET",
                self._url(f"/v3/payments/{payment_id}"),
                timeout=self.timeouts.payment_status,
                headers={"Authorization": f"Bearer {token}"},
            )
            return ProviderPaymentStatus.model_validate(resp.json())

        try:
            return await self._retry(_get, f"Get Payment Status (Payment: {payment_id})")
        except Exception as exc:
            logger.error("payment_status_failed", provider=self.provider, payment_id=payment_id, error=str(exc))
            raise PaymentError(
                PaymentErrorCode.PAYMENT_CREATION_FAILED,
                "Failed to get payment status",
                http_status=response_status(exc),
                retryable=True,
                user_message="Unable to retrieve payment status. Please try again.",
                original_error=exc,
                payment_id=payment_id,
            ) from exc

    # ---- webhooks ---------------------------------------------------------

    async def _fetch_jwks(self, jku: str) -> dict[str, Any]:
        resp = await self._send("GET", jku, timeout=self.timeouts.jwks)
        return resp.json()

    async def verify_webhook_signature(
        self,
        signature: str,
        raw_body: bytes,
        path: str,
        headers: Mapping[str, str],
    ) -> bool:
        try:
            jku = extract_jws_header(signature).jku
            if not jku:
                logger.error("webhook_signature_no_jku", provider=self.provider)
                return False
            if jku not in self.allowed_jkus:
                logger.error("webhook_signature_jku_not_allowed", provider=self.provider, jku=jku)
                return False
            jwks = await self._fetch_jwks(jku)
            verify_signature(
                jwks=jwks,
                signature=signature,
                method="POST",
                path=path,
                headers=headers,
                body=raw_body,
            )
            return True
        except Exception as exc:
            logger.error("webhook_signature_invalid", provider=self.provider, error=str(exc))
            return False
