from typing import Any

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        super().__init__(message, code="CONFLICT", status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(
        self,
        message: str = "Bad request",
        details: dict[str, Any] | None = None,
        code: str = "BAD_REQUEST",
    ):
        super().__init__(message, code=code, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InsufficientCreditsError(AppError):
    def __init__(self, required: int, message: str = "Not enough credits for this action"):
        super().__init__(
            message,
            code="INSUFFICIENT_CREDITS",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details={"required": required},
        )


class StoreUnavailableError(AppError):
    """Transient database failure; the whole operation may be retried."""

    def __init__(self, message: str = "Service temporarily unavailable, please try again"):
        super().__init__(message, code="STORE_UNAVAILABLE", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class DuplicatePaymentError(ConflictError):
    """Unique (user, payment id) constraint hit on insert."""

    def __init__(self, payment_id: str):
        super().__init__("Payment already recorded", details={"payment_id": payment_id})
        self.payment_id = payment_id


class PaymentNotCreditedError(AppError):
    def __init__(self, payment_id: str):
        super().__init__(
            f"Payment {payment_id} was recorded but credits were not added. Please contact support.",
            code="PAYMENT_NOT_CREDITED",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"payment_id": payment_id},
        )


class RetrievalServiceError(AppError):
    """Failure talking to the document retrieval service."""

    def __init__(
        self,
        message: str,
        code: str = "RAGIE_REQUEST_FAILED",
        upstream_status: int | None = None,
        detail: str | None = None,
        request_id: str | None = None,
    ):
        if upstream_status in (413, 415, 429):
            http_status = upstream_status
        elif code == "RAGIE_TIMEOUT":
            http_status = status.HTTP_504_GATEWAY_TIMEOUT
        elif code in ("RAGIE_NOT_CONFIGURED", "RAGIE_UNAVAILABLE"):
            http_status = status.HTTP_503_SERVICE_UNAVAILABLE
        else:
            http_status = status.HTTP_502_BAD_GATEWAY
        details: dict[str, Any] = {"upstream_status": upstream_status}
        if detail:
            details["detail"] = detail
        if request_id:
            details["upstream_request_id"] = request_id
        super().__init__(message, code=code, status_code=http_status, details=details)
        self.upstream_status = upstream_status


class GenerationError(AppError):
    def __init__(self, message: str = "Answer generation failed, please try again"):
        super().__init__(message, code="GENERATION_FAILED", status_code=status.HTTP_502_BAD_GATEWAY)


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": jsonable_encoder(exc.errors())},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from docqa.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
