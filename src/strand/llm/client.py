"""Built-in OpenAI-compatible streaming backend (httpx + tenacity).

Streams ``/chat/completions`` server-sent events and maps HTTP failures onto
the provider error hierarchy so the failover controller can classify them.
Reads configuration from constructor arguments or environment variables.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
import tenacity

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
from strand.llm.protocols import StreamChunk
from strand.protocols import Message, ToolCall, UsageReport

logger = logging.getLogger(__name__)

_PROVIDER = "openai"
_AUTH_ERROR_STATUS_CODES = {401, 403}
_OVERFLOW_MARKERS = (
    "context_length_exceeded",
    "maximum context length",
    "context window",
    "too many tokens",
)


def _parse_retry_after(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


def _status_error(status_code: int, body: str, headers: httpx.Headers) -> ProviderError:
    """Translate a failed HTTP status into the matching provider error."""
    detail = f"HTTP {status_code} - {body[:500]}"
    if status_code in _AUTH_ERROR_STATUS_CODES:
        return AuthenticationFailedError(f"Authentication failed: {detail}", provider=_PROVIDER)
    if status_code == 429:
        return RateLimitedError(
            f"Rate limited: {detail}",
            retry_after=_parse_retry_after(headers.get("Retry-After")),
            provider=_PROVIDER,
        )
    lowered = body.lower()
    if status_code in (400, 413) and any(m in lowered for m in _OVERFLOW_MARKERS):
        return ContextOverflowError(f"Context length exceeded: {detail}", provider=_PROVIDER)
    if status_code == 404:
        return ModelNotFoundError(f"Model not found: {detail}", provider=_PROVIDER)
    if status_code >= 500:
        return ProviderServerError(
            f"Server error: {detail}", status_code=status_code, provider=_PROVIDER
        )
    return ProviderResponseError(f"Request rejected: {detail}", provider=_PROVIDER)


class OpenAIBackend:
    """Async httpx backend for OpenAI-compatible streaming chat completions.

    Implements the ModelBackend protocol. Connection failures while opening
    the stream are retried with exponential backoff; every other failure is
    raised as a ProviderError and left to the failover controller.

    Usage::

        async with OpenAIBackend(api_key="sk-...") as backend:
            async for chunk in backend.stream(messages, model="gpt-4o-mini"):
                print(chunk.delta, end="")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        connect_retries: int = 3,
        strip_provider_prefix: bool = True,
    ) -> None:
        """Initialize the backend.

        Args:
            api_key: Default API key. Falls back to STRAND_OPENAI_API_KEY.
                A per-call ``credential`` overrides it.
            base_url: API base URL. Falls back to STRAND_OPENAI_BASE_URL,
                then to https://api.openai.com/v1.
            timeout: Request timeout in seconds.
            connect_retries: Attempts for opening the connection.
            strip_provider_prefix: Send ``gpt-4o`` for ``openai/gpt-4o``.
        """
        self._api_key = api_key or os.environ.get("STRAND_OPENAI_API_KEY", "")
        self._base_url = (
            base_url
            or os.environ.get("STRAND_OPENAI_BASE_URL", "https://api.openai.com/v1")
        ).rstrip("/")
        self._connect_retries = connect_retries
        self._strip_prefix = strip_provider_prefix
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def stream(
        self,
        messages: Sequence[Message],
        *,
        model: str,
        credential: str | None = None,
        tools: Sequence[dict] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream one chat completion.

        Yields a StreamChunk per text increment and a terminal chunk carrying
        the accumulated tool calls, finish reason and usage.

        Raises:
            ProviderConfigError: If no API key is available.
            AuthenticationFailedError, RateLimitedError, ContextOverflowError,
            ModelNotFoundError, ProviderServerError, ProviderResponseError:
                On the corresponding HTTP failures.
            ProviderTimeoutError: On read/connect timeouts.
            ProviderNetworkError: On other transport failures.
        """
        key = credential or self._api_key
        if not key:
            raise ProviderConfigError(
                "No API key provided. Pass api_key=, a credential, or set "
                "STRAND_OPENAI_API_KEY environment variable.",
                provider=_PROVIDER,
            )

        payload: dict[str, Any] = {
            "model": self._wire_model(model),
            "messages": [m.to_dict() for m in messages],
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            payload["tools"] = list(tools)

        request = self._client.build_request(
            "POST",
            f"{self._base_url}/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {key}"},
        )

        try:
            response = await self._send(request)
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"Timed out calling {model}: {exc}", provider=_PROVIDER) from exc
        except httpx.TransportError as exc:
            raise ProviderNetworkError(f"Network error calling {model}: {exc}", provider=_PROVIDER) from exc

        try:
            if response.status_code >= 400:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise _status_error(response.status_code, body, response.headers)
            async for chunk in self._iter_chunks(response):
                yield chunk
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"Timed out streaming {model}: {exc}", provider=_PROVIDER) from exc
        except httpx.TransportError as exc:
            raise ProviderNetworkError(f"Stream from {model} failed: {exc}", provider=_PROVIDER) from exc
        finally:
            await response.aclose()

    async def _send(self, request: httpx.Request) -> httpx.Response:
        """Open the streaming response, retrying connection failures.

        Uses tenacity.AsyncRetrying programmatically (not as decorator) so
        that the attempt count is configurable per-instance.
        """
        retryer = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception_type(httpx.ConnectError),
            wait=(
                tenacity.wait_exponential(multiplier=0.5, min=0.5, max=8)
                + tenacity.wait_random(0, 1)
            ),
            stop=tenacity.stop_after_attempt(self._connect_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return await retryer(self._client.send, request, stream=True)

    async def _iter_chunks(self, response: httpx.Response) -> AsyncIterator[StreamChunk]:
        """Parse server-sent events into StreamChunks."""
        calls: dict[int, dict[str, str]] = {}
        finish_reason: str | None = None
        usage: UsageReport | None = None

        async for line in response.aiter_lines():
            line = line.strip()
            if not line.startswith("data:"):
                continue
            data = line[len("data:"):].strip()
            if data == "[DONE]":
                break
            try:
                event = json.loads(data)
            except json.JSONDecodeError as exc:
                raise ProviderResponseError(
                    f"Malformed stream event: {data[:200]}", provider=_PROVIDER
                ) from exc

            if event.get("error"):
                message = json.dumps(event["error"])
                raise _status_error(400, message, response.headers)

            raw_usage = event.get("usage")
            if raw_usage:
                usage = UsageReport(
                    input_tokens=int(raw_usage.get("prompt_tokens") or 0),
                    output_tokens=int(raw_usage.get("completion_tokens") or 0),
                )

            for choice in event.get("choices") or []:
                delta = choice.get("delta") or {}
                text = delta.get("content")
                if text:
                    yield StreamChunk(delta=text)
                for raw in delta.get("tool_calls") or []:
                    slot = calls.setdefault(
                        raw.get("index", 0), {"id": "", "name": "", "arguments": ""}
                    )
                    if raw.get("id"):
                        slot["id"] = raw["id"]
                    func = raw.get("function") or {}
                    if func.get("name"):
                        slot["name"] = func["name"]
                    if func.get("arguments"):
                        slot["arguments"] += func["arguments"]
                if choice.get("finish_reason"):
                    finish_reason = choice["finish_reason"]

        tool_calls = tuple(
            ToolCall.from_openai({
                "id": slot["id"] or f"call_{uuid.uuid4().hex[:8]}",
                "function": {"name": slot["name"], "arguments": slot["arguments"] or "{}"},
            })
            for _, slot in sorted(calls.items())
        )
        yield StreamChunk(
            tool_calls=tool_calls,
            finish_reason=finish_reason or ("tool_calls" if tool_calls else "stop"),
            usage=usage,
        )

    def _wire_model(self, model: str) -> str:
        if self._strip_prefix and "/" in model:
            return model.split("/", 1)[1]
        return model

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def __aenter__(self) -> OpenAIBackend:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
