"""
Custom exceptions and error handlers for consistent error responses.

Every error leaves the API in the same envelope:
    {"ok": false, "error": <code>, "message": <text>, "details": {...}}
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class BadRequestError(AppException):
    """Generic 400 carrying a machine readable code."""

    def __init__(self, error_code: str, message: str = None, details: Dict[str, Any] = None):
        super().__init__(
            message=message or error_code.replace("_", " "),
            error_code=error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", error_code: str = "forbidden", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None, error_code: str = "not_found"):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="unauthenticated",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class IllegalTransitionError(AppException):
    """Raised when a forwarding action is not allowed from the current status."""

    def __init__(self, current_status: str, action: str):
        super().__init__(
            message=f"Cannot apply '{action}' to a request in status '{current_status}'",
            error_code="illegal_transition",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"from": current_status, "action": action}
        )


class ConcurrentUpdateError(AppException):
    """Raised when a row changed status between read and conditional update."""

    def __init__(self, resource: str, expected_status: str):
        super().__init__(
            message=f"{resource} was modified by another request",
            error_code="concurrent_update",
            status_code=status.HTTP_409_CONFLICT,
            details={"expected_status": expected_status}
        )


class IdempotencyKeyConflictError(AppException):
    """Raised when an idempotency key was already used for a different letter."""

    def __init__(self):
        super().__init__(
            message="Idempotency key already used for another request",
            error_code="idempotency_key_conflict",
            status_code=status.HTTP_409_CONFLICT
        )


class InvalidAttributionError(AppException):
    """Raised when a destruction record would not name a real staff member."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="invalid_attribution",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class KycRequiredError(AppException):
    def __init__(self, kyc_status: str):
        super().__init__(
            message="Identity verification must be approved first",
            error_code="KYC_REQUIRED",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"kyc_status": kyc_status}
        )


class BillingRequiredError(AppException):
    def __init__(self, plan_status: str):
        super().__init__(
            message="An active subscription is required",
            error_code="BILLING_REQUIRED",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"plan_status": plan_status}
        )


class WebhookSignatureError(AppException):
    """Raised when a provider webhook fails signature verification."""

    def __init__(self, provider: str, message: str = "Invalid webhook signature"):
        super().__init__(
            message=message,
            error_code="invalid_signature",
            status_code=status.HTTP_401_UNAUTHORIZED,
            details={"provider": provider}
        )


class WebhookPayloadError(AppException):
    def __init__(self, provider: str):
        super().__init__(
            message="Webhook body is not valid JSON",
            error_code="invalid_json",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"provider": provider}
        )


def error_body(error_code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    return {
        "ok": False,
        "error": error_code,
        "message": message,
        "details": details or {}
    }


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_body(exc.error_code, exc.message, exc.details))
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "bad_request",
        401: "unauthenticated",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        500: "internal_error"
    }

    error_code = error_code_map.get(exc.status_code, "error")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(error_code, exc.detail),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder(
            error_body("validation_error", "Validation error", {"errors": exc.errors()})
        )
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("internal_error", "An internal server error occurred")
    )
