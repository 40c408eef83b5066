"""
API dependencies - services are built once in the lifespan and read from app.state.
"""
from fastapi import Request

from application.services.payment_service import PaymentService
from application.services.webhook_dispatcher import WebhookDispatcher


async def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


async def get_webhook_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.webhook_dispatcher
