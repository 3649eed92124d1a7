"""Statistical rung: Google Cloud Translation v2 over httpx."""

from __future__ import annotations

import html
import logging
import time
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from livetrans.error_codes import ErrorCode
from livetrans.exceptions import ProviderError
from livetrans.models.translation import EngineName
from livetrans.providers._retry import (
    MAX_ATTEMPTS,
    RetryableProviderError,
    is_retryable_status,
    log_retry,
    wait_retry,
)
from livetrans.translation.engines.base import TranslationEngine
from livetrans.translation.languages import google_code

logger = logging.getLogger(__name__)

DEFAULT_GOOGLE_BASE_URL = "https://translation.googleapis.com"
PUBLIC_ENDPOINT = "https://translate.googleapis.com/translate_a/single"


def _parse_v2(body: Any) -> str:
    translations = ((body or {}).get("data") or {}).get("translations") or []
    if not translations or not isinstance(translations[0], dict):
        raise ValueError("no translations in response")
    return html.unescape(str(translations[0].get("translatedText") or ""))


def _parse_public(body: Any) -> str:
    # [[["translated", "source", ...], ...], ...]
    if not isinstance(body, list) or not body or not isinstance(body[0], list):
        raise ValueError("unexpected response shape")
    return "".join(str(part[0]) for part in body[0] if isinstance(part, list) and part and part[0])


class GoogleTranslateEngine(TranslationEngine):
    """Uses the official v2 API when an API key is configured.

    Without a key the keyless public endpoint can be used instead
    (`use_public_endpoint=True`); with neither, the engine reports itself as
    unconfigured and the chain skips it.
    """

    name = EngineName.STATISTICAL
    quality = 0.75

    def __init__(
        self,
        *,
        api_key: str = "",
        base_url: str = DEFAULT_GOOGLE_BASE_URL,
        use_public_endpoint: bool = False,
        timeout: float = 10.0,
    ) -> None:
        self.provider = "google_translate"
        self.model = "v2" if api_key else "gtx"
        self.api_key = str(api_key or "").strip()
        self.base_url = str(base_url or DEFAULT_GOOGLE_BASE_URL).rstrip("/")
        self.use_public_endpoint = bool(use_public_endpoint)
        self.timeout = float(timeout)
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) or self.use_public_endpoint

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    @retry(
        retry=retry_if_exception_type(RetryableProviderError),
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_retry,
        before_sleep=log_retry(logger, "translate"),
        reraise=True,
    )
    async def _request(self, text: str, target: str) -> Any:
        client = await self._get_client()
        try:
            if self.api_key:
                response = await client.post(
                    f"{self.base_url}/language/translate/v2",
                    params={"key": self.api_key},
                    json={"q": text, "target": target, "format": "text"},
                )
            else:
                response = await client.get(
                    PUBLIC_ENDPOINT,
                    params={"client": "gtx", "sl": "auto", "tl": target, "dt": "t", "q": text},
                )
        except httpx.TransportError as exc:
            raise RetryableProviderError(
                self.provider, str(exc), error_code=ErrorCode.TRANSLATION_FAILED
            ) from exc

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}: {response.text[:500]}"
            if is_retryable_status(response.status_code):
                raise RetryableProviderError(
                    self.provider,
                    message,
                    rate_limited=response.status_code == 429,
                    error_code=ErrorCode.TRANSLATION_FAILED,
                )
            raise ProviderError(self.provider, message, error_code=ErrorCode.TRANSLATION_FAILED)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                self.provider, f"malformed response body: {exc}", error_code=ErrorCode.TRANSLATION_FAILED
            ) from exc

    async def translate(self, text: str, language: str) -> str:
        started = time.perf_counter()
        body = await self._request(text, google_code(language))
        try:
            out = _parse_v2(body) if self.api_key else _parse_public(body)
        except (ValueError, AttributeError, TypeError) as exc:
            raise ProviderError(
                self.provider, f"malformed response body: {exc}", error_code=ErrorCode.TRANSLATION_FAILED
            ) from exc
        logger.debug(
            "translate call (provider=%s, endpoint=%s, language=%s, latency_ms=%s)",
            self.provider,
            self.model,
            language,
            int((time.perf_counter() - started) * 1000),
        )
        return out.strip()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
