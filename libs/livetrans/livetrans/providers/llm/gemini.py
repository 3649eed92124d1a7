"""Google Gemini LLM Provider implementation (google-generativeai SDK)."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, TypedDict

from livetrans.error_codes import ErrorCode
from livetrans.exceptions import ProviderError
from livetrans.providers.llm.base import LLMCompletionResult, LLMProvider, LLMUsage, Message

logger = logging.getLogger(__name__)


class _GeminiContent(TypedDict):
    role: str
    parts: list[dict[str, str]]


# genai.configure() mutates module-global state.
_GENAI_LOCK = threading.Lock()


def _usage_field(usage_obj: object, name: str) -> int | None:
    value = usage_obj.get(name) if isinstance(usage_obj, dict) else getattr(usage_obj, name, None)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _to_gemini_request(messages: list[Message]) -> tuple[str | None, list[_GeminiContent]]:
    system_chunks: list[str] = []
    contents: list[_GeminiContent] = []
    for m in messages:
        role = str(m.role or "").strip().lower()
        if role == "system":
            if m.content:
                system_chunks.append(m.content)
            continue
        contents.append(
            {"role": "model" if role in {"assistant", "model"} else "user", "parts": [{"text": str(m.content)}]}
        )
    system_instruction = "\n\n".join(system_chunks).strip()
    return system_instruction or None, contents


def _response_text(response: object) -> str:
    try:
        text = str(getattr(response, "text", "") or "").strip()
    except ValueError:
        # `.text` raises when the candidate was blocked or has no parts.
        text = ""
    if text:
        return text
    candidates = getattr(response, "candidates", None) or []
    for candidate in candidates:
        parts = getattr(getattr(candidate, "content", None), "parts", None) or []
        for part in parts:
            part_text = str(getattr(part, "text", "") or "").strip()
            if part_text:
                return part_text
    return ""


class GeminiProvider(LLMProvider):
    """Google Gemini API provider (Google AI Studio / compatible endpoints)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
    ) -> None:
        self.provider = "gemini"
        self.api_key = str(api_key or "")
        self.model = str(model or "").strip()
        self.base_url = str(base_url or "").strip() or None
        if not self.api_key:
            raise ValueError("GeminiProvider requires api_key")
        if not self.model:
            raise ValueError("GeminiProvider requires model")

    def _generate_sync(
        self,
        contents: list[_GeminiContent],
        *,
        system_instruction: str | None,
        temperature: float,
        max_tokens: int | None,
    ) -> object:
        import google.generativeai as genai  # type: ignore[import-not-found]

        kwargs: dict[str, Any] = {"api_key": self.api_key}
        if self.base_url:
            kwargs["client_options"] = {"api_endpoint": self.base_url}
        genai.configure(**kwargs)

        model_kwargs: dict[str, Any] = {"model_name": self.model}
        if system_instruction:
            model_kwargs["system_instruction"] = system_instruction
        generation_config: dict[str, Any] = {"temperature": float(temperature)}
        if max_tokens is not None:
            generation_config["max_output_tokens"] = int(max_tokens)

        model = genai.GenerativeModel(**model_kwargs)
        return model.generate_content(contents, generation_config=generation_config)

    def _generate_locked(self, *args: Any, **kwargs: Any) -> object:
        with _GENAI_LOCK:
            return self._generate_sync(*args, **kwargs)

    async def complete_with_usage(
        self,
        messages: list[Message],
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> LLMCompletionResult:
        system_instruction, contents = _to_gemini_request(messages)
        started = time.perf_counter()
        try:
            response = await asyncio.to_thread(
                self._generate_locked,
                contents,
                system_instruction=system_instruction,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as exc:
            logger.warning("llm request failed: %s", exc)
            raise ProviderError(self.provider, str(exc), error_code=ErrorCode.LLM_FAILED) from exc

        usage_obj = getattr(response, "usage_metadata", None)
        usage = None
        if usage_obj is not None:
            usage = LLMUsage.from_counts(
                _usage_field(usage_obj, "prompt_token_count"),
                _usage_field(usage_obj, "candidates_token_count"),
                _usage_field(usage_obj, "total_token_count"),
            )
        return self._finish(_response_text(response), usage, started)
