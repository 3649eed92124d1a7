"""Anthropic LLM Provider implementation using official SDK."""

from __future__ import annotations

import logging
import time

import anthropic
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from livetrans.error_codes import ErrorCode
from livetrans.exceptions import ProviderError
from livetrans.providers._retry import MAX_ATTEMPTS, RetryableProviderError, log_retry, wait_retry
from livetrans.providers.llm.base import LLMCompletionResult, LLMProvider, LLMUsage, Message

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-latest"
DEFAULT_MAX_TOKENS = 2048


def _split_system_messages(messages: list[Message]) -> tuple[str | None, list[dict[str, str]]]:
    system_chunks: list[str] = []
    turns: list[dict[str, str]] = []
    for m in messages:
        role = str(m.role or "").strip().lower()
        if role == "system":
            if m.content:
                system_chunks.append(str(m.content))
            continue
        if role not in {"user", "assistant"}:
            role = "user"
        turns.append({"role": role, "content": str(m.content or "")})
    system = "\n\n".join(system_chunks).strip()
    return (system or None), turns


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API provider."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        base_url: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.provider = "anthropic"
        self.api_key = str(api_key or "").strip()
        if not self.api_key:
            raise ValueError("AnthropicProvider requires api_key")
        self.model = str(model or "").strip() or DEFAULT_ANTHROPIC_MODEL

        # The SDK expects the base URL without the /v1 suffix.
        resolved = str(base_url or "").strip().rstrip("/")
        if resolved.endswith("/v1"):
            resolved = resolved[:-3]
        self.base_url = resolved or None
        self._client = anthropic.AsyncAnthropic(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=float(timeout),
            max_retries=0,
        )

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
        system, turns = _split_system_messages(messages)
        started = time.perf_counter()
        try:
            response = await self._client.messages.create(
                model=self.model,
                messages=turns,
                system=system or anthropic.NOT_GIVEN,
                temperature=float(temperature),
                max_tokens=int(max_tokens) if max_tokens is not None else DEFAULT_MAX_TOKENS,
            )
        except anthropic.RateLimitError as exc:
            logger.warning("llm rate limited: %s", exc)
            raise RetryableProviderError(
                self.provider, str(exc), rate_limited=True, error_code=ErrorCode.LLM_FAILED
            ) from exc
        except anthropic.APIStatusError as exc:
            if exc.status_code >= 500:
                logger.warning("llm server error: %s", exc)
                raise RetryableProviderError(
                    self.provider, str(exc), error_code=ErrorCode.LLM_FAILED
                ) from exc
            logger.warning("llm request failed: %s", exc)
            raise ProviderError(self.provider, str(exc), error_code=ErrorCode.LLM_FAILED) from exc
        except anthropic.APITimeoutError as exc:
            logger.warning("llm timeout: %s", exc)
            raise RetryableProviderError(
                self.provider, str(exc), error_code=ErrorCode.LLM_TIMEOUT
            ) from exc
        except anthropic.APIConnectionError as exc:
            logger.warning("llm connection error: %s", exc)
            raise RetryableProviderError(
                self.provider, str(exc), error_code=ErrorCode.LLM_FAILED
            ) from exc

        text = "".join(
            str(getattr(block, "text", "") or "")
            for block in (response.content or [])
            if getattr(block, "type", None) == "text"
        )
        usage_obj = getattr(response, "usage", None)
        usage = LLMUsage.from_counts(
            getattr(usage_obj, "input_tokens", None),
            getattr(usage_obj, "output_tokens", None),
        )
        return self._finish(text, usage, started)

    async def close(self) -> None:
        await self._client.close()
