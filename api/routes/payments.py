"""
Payments API routes.

Creation, the hosted-payment-page return, provider webhooks and a read
endpoint for stored records. Keep this thin: no provider details here.
"""
from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.dependencies import get_payment_service, get_webhook_dispatcher
from application.dtos.payments import CreatePaymentRequest, PaymentView
from application.services.payment_service import PaymentService
from application.services.webhook_dispatcher import WebhookAuthenticationError, WebhookDispatcher
from core.logging_config import get_logger
from core.response import success_response


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("", summary="Create payment")
async def create_payment(
    payload: CreatePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.create_payment(payload)
    return result.model_dump(by_alias=True)


@router.get("/callback", summary="Hosted payment page return")
async def payment_callback(
    payment_id: Optional[str] = Query(default=None),
    service: PaymentService = Depends(get_payment_service),
):
    return RedirectResponse(await service.handle_callback(payment_id), status_code=302)


@router.post("/webhook", summary="Provider webhook")
async def payments_webhook(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body or b"")
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

    # The signature covers the path as the provider sent it, query included
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"

    try:
        result = await dispatcher.dispatch(
            request.headers.get("tl-signature"),
            raw_body,
            path,
            dict(request.headers),
            payload,
        )
    except WebhookAuthenticationError as exc:
        return JSONResponse(status_code=401, content={"error": exc.message})
    except Exception as exc:
        logger.error("webhook_processing_failed", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Webhook processing failed", "message": str(exc)},
        )

    logger.info("webhook_acknowledged", handled=result.handled, reason=result.reason, event_type=result.event_type)
    return {"received": True}


@router.get("/{payment_id}", summary="Stored payment")
async def get_payment(
    payment_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment(payment_id)
    doc = payment.to_document()
    view = PaymentView(
        payment_id=payment.id,
        amount=payment.amount,
        currency=payment.currency,
        status=payment.status.value,
        hpp_url=payment.hpp_url,
        metadata=payment.metadata,
        created_at=doc["createdAt"],
        updated_at=doc["updatedAt"],
    )
    return success_response(data=view.model_dump(by_alias=True))
