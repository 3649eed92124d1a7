"""Generative translation engine backed by any LLMProvider."""

from __future__ import annotations

import json
import logging

from livetrans.error_codes import ErrorCode
from livetrans.exceptions import ProviderError
from livetrans.models.translation import EngineName
from livetrans.providers.llm.base import LLMProvider, Message, with_json_instruction
from livetrans.translation.engines.base import TranslationEngine
from livetrans.translation.languages import language_name
from livetrans.utils.llm_json import extract_string_fields, parse_llm_json_object

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are a professional translator for live lectures and presentations. "
    "The source is live speech recognition output, so:\n"
    "- keep the speaker's tone and intent\n"
    "- fix obvious speech recognition errors naturally\n"
    "- keep technical terms accurate\n"
    "- make it sound natural in the target language"
)


def _single_messages(text: str, language: str) -> list[Message]:
    return [
        Message(role="system", content=_SYSTEM_PROMPT),
        Message(
            role="user",
            content=(
                f"Translate the following text to {language_name(language)}. "
                "Reply with the translation only, without quotes or explanation.\n\n"
                f"{text}"
            ),
        ),
    ]


def _batch_messages(text: str, languages: list[str]) -> list[Message]:
    listing = ", ".join(f"{code}: {language_name(code)}" for code in languages)
    shape = json.dumps(
        {code: f"<{language_name(code)} translation>" for code in languages},
        ensure_ascii=False,
        indent=2,
    )
    return with_json_instruction(
        [
            Message(role="system", content=_SYSTEM_PROMPT),
            Message(
                role="user",
                content=(
                    f"Translate the following text into ALL of these languages: {listing}.\n"
                    "Return a JSON object keyed by language code:\n"
                    f"{shape}\n\n"
                    f"Text: {text}"
                ),
            ),
        ]
    )


def _strip_wrapping_quotes(text: str) -> str:
    out = text.strip()
    if len(out) >= 2 and out[0] == out[-1] and out[0] in {'"', "'", "“", "”"}:
        out = out[1:-1].strip()
    return out


class LLMTranslationEngine(TranslationEngine):
    """Premium or secondary generative rung.

    The batch call asks for a JSON object keyed by language code; when the
    JSON is truncated or malformed the per-language values are recovered with
    a regex and only those languages are returned.
    """

    supports_batch = True

    def __init__(
        self,
        llm: LLMProvider,
        *,
        name: EngineName,
        quality: float,
        temperature: float = 0.3,
    ) -> None:
        self.llm = llm
        self.name = name
        self.quality = float(quality)
        self.temperature = float(temperature)

    async def translate(self, text: str, language: str) -> str:
        max_tokens = max(64, min(len(text) * 3, 1000))
        out = await self.llm.complete(
            _single_messages(text, language),
            temperature=self.temperature,
            max_tokens=max_tokens,
        )
        return _strip_wrapping_quotes(out)

    async def translate_batch(self, text: str, languages: list[str]) -> dict[str, str]:
        if not languages:
            return {}
        max_tokens = max(128, min(len(text) * len(languages) * 3, 2000))
        raw = await self.llm.complete(
            _batch_messages(text, languages),
            temperature=self.temperature,
            max_tokens=max_tokens,
        )
        try:
            data = parse_llm_json_object(raw)
        except json.JSONDecodeError as exc:
            recovered = extract_string_fields(raw, languages)
            if not recovered:
                raise ProviderError(
                    self.llm.provider,
                    f"unparseable batch translation response: {exc}",
                    error_code=ErrorCode.TRANSLATION_FAILED,
                ) from exc
            logger.warning(
                "batch translation json malformed, recovered %s/%s languages (engine=%s)",
                len(recovered),
                len(languages),
                self.name.value,
            )
            return recovered

        out: dict[str, str] = {}
        for code in languages:
            value = data.get(code)
            if isinstance(value, str) and value.strip():
                out[code] = _strip_wrapping_quotes(value)
        return out

    async def close(self) -> None:
        await self.llm.close()
