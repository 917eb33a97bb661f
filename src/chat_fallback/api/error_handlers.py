"""Error handling and response standardization for the operator API."""

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from chat_fallback.domain.exceptions import ChatFallbackException, ValidationException
from chat_fallback.observability.logging.correlation import get_correlation_id

logger = structlog.get_logger()


class ErrorResponse(BaseModel):
    """Standardized error response format."""

    error: bool = True
    code: str
    message: str
    details: dict[str, Any] | None = None
    correlation_id: str | None = None
    timestamp: str
    path: str


class ValidationErrorDetail(BaseModel):
    """Validation error detail."""

    field: str
    message: str
    value: Any


class ValidationErrorResponse(ErrorResponse):
    """Validation error response."""

    code: str = "validation_error"
    validation_errors: list[ValidationErrorDetail]


def create_error_response(
    request: Request,
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> JSONResponse:
    """Create standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            code=code,
            message=message,
            details=details,
            correlation_id=correlation_id or get_correlation_id(),
            timestamp=datetime.now(UTC).isoformat(),
            path=str(request.url.path),
        ).model_dump(),
    )


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body validation errors."""
    validation_errors = [
        ValidationErrorDetail(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            value=str(error.get("input")),
        )
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ValidationErrorResponse(
            message="Validation failed",
            validation_errors=validation_errors,
            correlation_id=get_correlation_id(),
            timestamp=datetime.now(UTC).isoformat(),
            path=str(request.url.path),
        ).model_dump(),
    )


async def validation_exception_handler(
    request: Request, exc: ValidationException
) -> JSONResponse:
    """Handle malformed request contexts rejected by the orchestrator."""
    return create_error_response(
        request=request,
        code=exc.error_code.value,
        message=str(exc),
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details=exc.details,
        correlation_id=exc.correlation_id,
    )


async def chat_fallback_exception_handler(
    request: Request, exc: ChatFallbackException
) -> JSONResponse:
    """Handle any other error from the orchestrator stack."""
    logger.error(
        "Unhandled orchestrator error",
        error_code=exc.error_code.value,
        error=str(exc),
        path=str(request.url.path),
    )
    return create_error_response(
        request=request,
        code=exc.error_code.value,
        message=str(exc),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        details=exc.details,
        correlation_id=exc.correlation_id,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationException, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ChatFallbackException, chat_fallback_exception_handler)  # type: ignore[arg-type]
