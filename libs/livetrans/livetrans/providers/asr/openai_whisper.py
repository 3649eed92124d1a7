"""Whisper-style `/audio/transcriptions` provider (OpenAI or compatible servers)."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any

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
from livetrans.providers.asr.base import ASRProvider, ASRResult, ASRSegment
from livetrans.utils.audio import pcm_to_wav

logger = logging.getLogger(__name__)


def _logprob_to_confidence(value: Any) -> float | None:
    if not isinstance(value, (int, float)):
        return None
    return max(0.0, min(1.0, math.exp(float(value))))


def _parse_verbose_json(body: dict[str, Any], language: str | None) -> ASRResult:
    segments: list[ASRSegment] = []
    for raw in body.get("segments") or []:
        if not isinstance(raw, dict):
            continue
        segments.append(
            ASRSegment(
                text=str(raw.get("text") or "").strip(),
                start=float(raw.get("start") or 0.0),
                end=float(raw.get("end") or 0.0),
                confidence=_logprob_to_confidence(raw.get("avg_logprob")),
            )
        )
    scored = [s.confidence for s in segments if s.confidence is not None]
    if scored:
        confidence = sum(scored) / len(scored)
    else:
        confidence = _logprob_to_confidence(body.get("avg_logprob")) or 0.9
    return ASRResult(
        text=str(body.get("text") or "").strip(),
        confidence=float(confidence),
        segments=segments,
        language=str(body.get("language") or "") or language,
    )


class OpenAIWhisperProvider(ASRProvider):
    """Transcribes in-memory PCM segments through a Whisper-compatible API.

    Each segment is wrapped as a WAV file and posted as multipart form data
    with `response_format=verbose_json`, so per-segment log probabilities are
    available for the confidence score.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        model: str = "whisper-1",
        temperature: float = 0.0,
        max_concurrent: int = 4,
        timeout: float = 60.0,
    ) -> None:
        self.provider = "openai_whisper"
        self.base_url = str(base_url or "").rstrip("/")
        self.api_key = api_key
        self.model = model
        self.temperature = float(temperature)
        self.max_concurrent = max(1, int(max_concurrent))
        self.timeout = float(timeout)
        self._client: httpx.AsyncClient | None = None
        self._semaphore: asyncio.Semaphore | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create connection-pooled HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(
                    max_connections=self.max_concurrent,
                    max_keepalive_connections=max(1, self.max_concurrent // 2),
                ),
            )
        return self._client

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        return self._semaphore

    @retry(
        retry=retry_if_exception_type(RetryableProviderError),
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_retry,
        before_sleep=log_retry(logger, "asr"),
        reraise=True,
    )
    async def _post(self, wav: bytes, data: dict[str, str]) -> dict[str, Any]:
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            response = await client.post(
                f"{self.base_url}/audio/transcriptions",
                headers=headers,
                files={"file": ("segment.wav", wav, "audio/wav")},
                data=data,
            )
        except httpx.TransportError as exc:
            raise RetryableProviderError(
                self.provider, str(exc), error_code=ErrorCode.ASR_FAILED
            ) from exc

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}: {response.text[:500]}"
            if is_retryable_status(response.status_code):
                raise RetryableProviderError(
                    self.provider,
                    message,
                    rate_limited=response.status_code == 429,
                    error_code=ErrorCode.ASR_FAILED,
                )
            raise ProviderError(self.provider, message, error_code=ErrorCode.ASR_FAILED)

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(
                self.provider, f"malformed response body: {exc}", error_code=ErrorCode.ASR_FAILED
            ) from exc
        if not isinstance(body, dict):
            raise ProviderError(self.provider, "expected a JSON object", error_code=ErrorCode.ASR_FAILED)
        return body

    async def transcribe(
        self,
        audio: bytes,
        *,
        sample_rate: int,
        language: str | None = None,
        prompt: str | None = None,
    ) -> ASRResult:
        data = {
            "model": self.model,
            "response_format": "verbose_json",
            "temperature": str(self.temperature),
        }
        if language:
            data["language"] = language
        if prompt:
            data["prompt"] = prompt

        wav = pcm_to_wav(audio, sample_rate)
        async with self._get_semaphore():
            started = time.perf_counter()
            body = await self._post(wav, data)
        result = _parse_verbose_json(body, language)
        logger.debug(
            "asr call (provider=%s, model=%s, latency_ms=%s, chars=%s, confidence=%.2f)",
            self.provider,
            self.model,
            int((time.perf_counter() - started) * 1000),
            len(result.text),
            result.confidence,
        )
        return result

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._semaphore = None

    async def __aenter__(self) -> "OpenAIWhisperProvider":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()
