"""
FastAPI application entry point.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import payments as payments_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from application.services.payment_lifecycle import PaymentLifecycle
from application.services.payment_service import PaymentService
from application.services.webhook_dispatcher import WebhookDispatcher
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from core.settings import payment_settings
from infrastructure.cache import shutdown_redis_client
from infrastructure.external.payments import get_payment_gateway
from infrastructure.repositories.payment_store import create_payment_store


# Configure logging explicitly at the entry point
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the payment object graph once and share it through app.state."""
    gateway = get_payment_gateway(cfg=payment_settings)
    store = await create_payment_store(payment_settings)
    lifecycle = PaymentLifecycle(store)
    app.state.payment_gateway = gateway
    app.state.payment_lifecycle = lifecycle
    app.state.payment_service = PaymentService(gateway, lifecycle, payment_settings.truelayer)
    app.state.webhook_dispatcher = WebhookDispatcher(gateway, lifecycle)
    logger.info(
        "payments_initialized",
        provider=gateway.provider,
        store=payment_settings.store.backend,
        environment=settings.ENVIRONMENT,
    )

    yield

    await gateway.aclose()
    if payment_settings.store.backend == "redis":
        await shutdown_redis_client()
        logger.info("redis_shutdown", message="Redis connection closed")
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Open-banking bank transfer payments",
)

# Middleware runs bottom-up: RequestID first so the logger sees request_id
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check"""
    return success_response(data={"status": "healthy"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
