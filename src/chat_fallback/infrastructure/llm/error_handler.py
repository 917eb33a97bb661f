"""Classification of raw provider exceptions into failure kinds."""

import asyncio

from chat_fallback.domain.exceptions import (
    ProviderErrorException,
    ProviderTimeoutException,
)
from chat_fallback.domain.models import ProviderErrorKind


class ProviderErrorHandler:
    """Maps SDK-specific exceptions onto :class:`ProviderErrorKind`."""

    # Checked in order; quota before rate limit ("rate limit quota exceeded").
    ERROR_PATTERNS: tuple[tuple[str, ProviderErrorKind], ...] = (
        ("insufficient_quota", ProviderErrorKind.QUOTA),
        ("quota", ProviderErrorKind.QUOTA),
        ("billing", ProviderErrorKind.QUOTA),
        ("resource_exhausted", ProviderErrorKind.QUOTA),
        ("rate_limit", ProviderErrorKind.RATE_LIMIT),
        ("ratelimit", ProviderErrorKind.RATE_LIMIT),
        ("too_many_requests", ProviderErrorKind.RATE_LIMIT),
        ("429", ProviderErrorKind.RATE_LIMIT),
        ("throttled", ProviderErrorKind.RATE_LIMIT),
        ("timeout", ProviderErrorKind.TIMEOUT),
        ("deadline_exceeded", ProviderErrorKind.TIMEOUT),
        ("connection", ProviderErrorKind.NETWORK),
        ("network", ProviderErrorKind.NETWORK),
        ("unreachable", ProviderErrorKind.NETWORK),
        ("internal_server", ProviderErrorKind.SERVER_ERROR),
        ("service_unavailable", ProviderErrorKind.SERVER_ERROR),
        ("overloaded", ProviderErrorKind.SERVER_ERROR),
        ("500", ProviderErrorKind.SERVER_ERROR),
        ("502", ProviderErrorKind.SERVER_ERROR),
        ("503", ProviderErrorKind.SERVER_ERROR),
    )

    @classmethod
    def classify(cls, error: BaseException) -> ProviderErrorKind:
        """Best-effort failure kind for an arbitrary exception."""
        if isinstance(error, (ProviderErrorException, ProviderTimeoutException)):
            return error.kind
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return ProviderErrorKind.TIMEOUT
        if isinstance(error, ConnectionError):
            return ProviderErrorKind.NETWORK

        haystacks = (
            str(error).lower().replace(" ", "_"),
            type(error).__name__.lower(),
        )
        for haystack in haystacks:
            for pattern, kind in cls.ERROR_PATTERNS:
                if pattern in haystack:
                    return kind
        return ProviderErrorKind.SERVER_ERROR

    @classmethod
    def to_exception(
        cls,
        error: BaseException,
        provider_id: str,
        timeout_ms: float,
        correlation_id: str | None = None,
    ) -> ProviderErrorException | ProviderTimeoutException:
        """Wrap ``error`` in the resilience taxonomy."""
        if isinstance(error, (ProviderErrorException, ProviderTimeoutException)):
            return error

        kind = cls.classify(error)
        if kind is ProviderErrorKind.TIMEOUT:
            return ProviderTimeoutException(provider_id, timeout_ms, correlation_id)
        return ProviderErrorException(
            provider_id, kind, f"{type(error).__name__}: {error}", correlation_id
        )
