"""Exception hierarchy for the chat fallback orchestrator."""

from typing import Any

from .models import ErrorCode, ProviderErrorKind


class ChatFallbackException(Exception):
    """Base exception for the chat fallback orchestrator."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}
        self.correlation_id = correlation_id


class ValidationException(ChatFallbackException):
    """Malformed request context; the only error surfaced to callers."""

    def __init__(
        self,
        message: str,
        field: str,
        value: Any,
        correlation_id: str | None = None,
    ):
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            {"field": field, "value": str(value)},
            correlation_id,
        )
        self.field = field


class ProviderTimeoutException(ChatFallbackException):
    """A provider call exceeded its time budget."""

    def __init__(
        self,
        provider_id: str,
        timeout_ms: float,
        correlation_id: str | None = None,
    ):
        super().__init__(
            f"Provider {provider_id} timed out after {timeout_ms:.0f}ms",
            ErrorCode.PROVIDER_TIMEOUT,
            {"provider_id": provider_id, "timeout_ms": timeout_ms},
            correlation_id,
        )
        self.provider_id = provider_id
        self.timeout_ms = timeout_ms
        self.kind = ProviderErrorKind.TIMEOUT


class ProviderErrorException(ChatFallbackException):
    """A provider reported a failure (rate limit, server error, ...)."""

    def __init__(
        self,
        provider_id: str,
        kind: ProviderErrorKind,
        message: str | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(
            message or f"Provider {provider_id} failed: {kind.value}",
            ErrorCode.PROVIDER_ERROR,
            {"provider_id": provider_id, "kind": kind.value},
            correlation_id,
        )
        self.provider_id = provider_id
        self.kind = kind
