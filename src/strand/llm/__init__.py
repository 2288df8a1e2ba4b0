"""Model backend infrastructure for Strand.

Provides the backend protocol, the provider error hierarchy, and an
OpenAI-compatible streaming client built on httpx.
"""

from strand.llm.client import OpenAIBackend
from strand.llm.errors import (
    AuthenticationFailedError,
    ContextOverflowError,
    ModelNotFoundError,
    ProviderConfigError,
    ProviderError,
    ProviderNetworkError,
    ProviderResponseError,
    ProviderServerError,
    ProviderTimeoutError,
    RateLimitedError,
)
from strand.llm.protocols import ModelBackend, StreamChunk

__all__ = [
    "OpenAIBackend",
    "ModelBackend",
    "StreamChunk",
    "ProviderError",
    "ProviderConfigError",
    "AuthenticationFailedError",
    "RateLimitedError",
    "ContextOverflowError",
    "ProviderTimeoutError",
    "ProviderNetworkError",
    "ProviderServerError",
    "ModelNotFoundError",
    "ProviderResponseError",
]
