"""OpenAI-compatible chat completions provider."""

from __future__ import annotations

import logging
import time

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from livetrans.error_codes import ErrorCode
from livetrans.exceptions import ProviderError
from livetrans.providers._retry import (
    MAX_ATTEMPTS,
    RetryableProviderError,
    is_retryable_status,
    log_retry,
    wait_retry,
)
from livetrans.providers.llm.base import LLMCompletionResult, LLMProvider, LLMUsage, Message

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"


def _format_http_error(response: httpx.Response) -> str:
    detail = response.text.strip() if response.content else ""
    if len(detail) > 2000:
        detail = detail[:2000] + "…"
    if detail:
        return f"HTTP {response.status_code} {response.reason_phrase}: {detail}"
    return f"HTTP {response.status_code} {response.reason_phrase}"


class OpenAICompatProvider(LLMProvider):
    """OpenAI-compatible API provider (works with OpenAI, vLLM, etc.)."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        provider: str = "openai",
        timeout: float = 30.0,
    ) -> None:
        self.provider = provider
        resolved = str(base_url or "").strip()
        self.base_url = (resolved or DEFAULT_OPENAI_BASE_URL).rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = float(timeout)
        self._client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    @retry(
        retry=retry_if_exception_type(RetryableProviderError),
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_retry,
        before_sleep=log_retry(logger, "llm"),
        reraise=True,
    )
    async def complete_with_usage(
        self,
        messages: list[Message],
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> LLMCompletionResult:
        payload: dict[str, object] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        client = await self._get_client()
        started = time.perf_counter()
        try:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=payload,
            )
        except httpx.TimeoutException as exc:
            logger.warning("llm request timeout: %s", exc)
            raise RetryableProviderError(
                self.provider, str(exc), error_code=ErrorCode.LLM_TIMEOUT
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("llm request failed: %s", exc)
            raise RetryableProviderError(
                self.provider, str(exc), error_code=ErrorCode.LLM_FAILED
            ) from exc

        if response.status_code >= 400:
            message = _format_http_error(response)
            if is_retryable_status(response.status_code):
                raise RetryableProviderError(
                    self.provider,
                    message,
                    rate_limited=response.status_code == 429,
                    error_code=ErrorCode.LLM_FAILED,
                )
            raise ProviderError(self.provider, message, error_code=ErrorCode.LLM_FAILED)

        try:
            body = response.json()
            text = body["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderError(
                self.provider, f"malformed completion body: {exc}", error_code=ErrorCode.LLM_FAILED
            ) from exc

        usage_obj = body.get("usage") if isinstance(body.get("usage"), dict) else {}
        usage = LLMUsage.from_counts(
            usage_obj.get("prompt_tokens"),
            usage_obj.get("completion_tokens"),
            usage_obj.get("total_tokens"),
        )
        return self._finish(text, usage, started)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "OpenAICompatProvider":
        await self._get_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: object | None,
    ) -> None:
        await self.close()
