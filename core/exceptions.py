"""
Exception-to-response mapping and global exception handlers.
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uuid
from starlette import status as http_status

from .response import error_response, payment_error_response
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentErrorCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.payment.errors import PaymentError


_BUSINESS_HTTP_STATUS = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def business_code_to_http_status(code) -> int:
    """Map a business code to an HTTP status (400 by default)."""
    try:
        return _BUSINESS_HTTP_STATUS.get(BusinessCode(code), http_status.HTTP_400_BAD_REQUEST)
    except ValueError:
        return http_status.HTTP_400_BAD_REQUEST


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI):
    """
    Register global exception handlers.

    Args:
        app: FastAPI application
    """

    logger = get_logger(__name__)

    @app.exception_handler(PaymentError)
    async def payment_exception_handler(request: Request, exc: PaymentError):
        """Payment failures carry their own HTTP status and envelope."""
        logger.error(
            "payment_error",
            request_id=_request_id(request),
            code=exc.code.value,
            error=exc.message,
            http_status=exc.http_status,
            retryable=exc.retryable,
            payment_id=exc.payment_id,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=payment_error_response(exc).model_dump(mode="json"),
        )

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        response = error_response(
            code=exc.code,
            message=exc.message,
            error_type=exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=business_code_to_http_status(exc.code),
            content=response.model_dump(mode='json'),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Request body/query validation failures."""
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        response = error_response(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=f"Validation failed: {first_error.get('msg', 'unknown')}",
            error_type="ValidationError",
            details={"errors": [{"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in errors]},
            field=field,
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode='json')
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        code_mapping = {
            401: BusinessCode.UNAUTHORIZED,
            404: BusinessCode.NOT_FOUND,
        }
        code = code_mapping.get(exc.status_code, BusinessCode.SYSTEM_ERROR)
        response = error_response(
            code=code,
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode='json'),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Anything uncaught surfaces as UNKNOWN_ERROR."""
        logger.error(
            "unhandled_exception",
            request_id=_request_id(request),
            error=str(exc),
            exc_info=True,
        )
        unknown = PaymentError(
            PaymentErrorCode.UNKNOWN_ERROR,
            str(exc),
            http_status=500,
            retryable=False,
            user_message="An unexpected error occurred. Please try again.",
        )
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=payment_error_response(unknown).model_dump(mode="json"),
        )
