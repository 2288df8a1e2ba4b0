"""Model provider error hierarchy.

All provider errors inherit from ProviderError (itself a StrandError) and
carry a short ``kind`` used by failover classification and event reasons.
"""

from __future__ import annotations

from strand.exceptions import StrandError


class ProviderError(StrandError):
    """Base for all model backend errors."""

    kind = "unknown"

    def __init__(self, message: str = "Provider error", *, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderConfigError(ProviderError):
    """Missing or invalid backend configuration (e.g., no API key)."""

    kind = "config"


class AuthenticationFailedError(ProviderError):
    """Authentication failed (401/403)."""

    kind = "auth"


class RateLimitedError(ProviderError):
    """Rate limited by the API (429).

    Attributes:
        retry_after: Seconds to wait before retrying (from Retry-After header),
            or None if not provided.
    """

    kind = "rate_limit"

    def __init__(
        self,
        message: str = "Rate limited",
        retry_after: float | None = None,
        *,
        provider: str | None = None,
    ) -> None:
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message, provider=provider)


class ContextOverflowError(ProviderError):
    """The request exceeded the model's context window."""

    kind = "context_overflow"


class ProviderTimeoutError(ProviderError):
    """The model call timed out."""

    kind = "timeout"


class ProviderNetworkError(ProviderError):
    """Transport-level failure talking to the backend."""

    kind = "network"


class ProviderServerError(ProviderError):
    """The backend answered with a 5xx status."""

    kind = "server"

    def __init__(
        self,
        message: str = "Server error",
        status_code: int | None = None,
        *,
        provider: str | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, provider=provider)


class ModelNotFoundError(ProviderError):
    """The requested model does not exist on the backend."""

    kind = "model_not_found"


class ProviderResponseError(ProviderError):
    """Unexpected response format from the backend."""

    kind = "response"
