"""Ranked translation engine chain."""

from __future__ import annotations

import asyncio
import logging

from livetrans.config import Settings
from livetrans.error_codes import ErrorCode
from livetrans.exceptions import ProviderError, TranslationRejectedError
from livetrans.models.translation import EngineName, TranslationResult
from livetrans.providers.registry import get_llm_provider
from livetrans.translation.engines.base import TranslationEngine
from livetrans.translation.engines.google import GoogleTranslateEngine
from livetrans.translation.engines.llm import LLMTranslationEngine
from livetrans.translation.engines.local import LocalPassthroughEngine
from livetrans.translation.quality import check_translation

logger = logging.getLogger(__name__)


class TranslationEngineChain:
    """Tries engines in rank order until one produces an acceptable translation.

    The local passthrough engine is always the last rung, so `translate_one`
    never fails. Unconfigured engines are skipped.
    """

    def __init__(
        self,
        engines: list[TranslationEngine],
        *,
        timeout_s: float = 20.0,
        batch_timeout_s: float = 30.0,
        concurrency: int = 3,
    ) -> None:
        ranked = [e for e in engines if e.name != EngineName.LOCAL]
        local = next((e for e in engines if e.name == EngineName.LOCAL), None)
        self._all = [*ranked, local or LocalPassthroughEngine()]
        self.timeout_s = float(timeout_s)
        self.batch_timeout_s = float(batch_timeout_s)
        self.concurrency = max(1, int(concurrency))

    @property
    def engines(self) -> list[TranslationEngine]:
        """Configured engines in rank order (local last)."""
        return [e for e in self._all if e.is_configured]

    async def translate_one(self, text: str, language: str) -> TranslationResult:
        for engine in self.engines:
            if engine.name == EngineName.LOCAL:
                out = await engine.translate(text, language)
                return TranslationResult(text=out, engine=engine.name, quality=engine.quality)

            try:
                out = await asyncio.wait_for(engine.translate(text, language), self.timeout_s)
            except asyncio.TimeoutError:
                logger.warning(
                    "translation timed out (engine=%s, language=%s, timeout_s=%s)",
                    engine.name.value,
                    language,
                    self.timeout_s,
                )
                continue
            except Exception as exc:
                logger.warning(
                    "translation failed (engine=%s, language=%s): %s",
                    engine.name.value,
                    language,
                    exc,
                )
                continue

            try:
                accepted = check_translation(text, out, language, engine=engine.name.value)
            except TranslationRejectedError as exc:
                logger.info("translation rejected (%s)", exc)
                continue
            return TranslationResult(text=accepted, engine=engine.name, quality=engine.quality)

        # engines always ends with the local rung
        raise AssertionError("engine chain exhausted without a local fallback")

    async def translate_batch(self, text: str, languages: list[str]) -> dict[str, TranslationResult]:
        """Translate `text` into every language with one batch call where possible.

        Languages the batch call omitted or that failed quality checks are
        retried one by one through the full rank order, at most
        `concurrency` at a time.

        Raises:
            ProviderError: If no batch-capable engine is configured or the
                batch call itself failed; callers fall back to per-language
                translation.
        """
        wanted = list(dict.fromkeys(languages))
        if not wanted:
            return {}
        engine = next(
            (e for e in self.engines if e.supports_batch and e.name != EngineName.LOCAL), None
        )
        if engine is None:
            raise ProviderError(
                "engine_chain",
                "no batch-capable engine configured",
                error_code=ErrorCode.TRANSLATION_FAILED,
            )

        try:
            raw = await asyncio.wait_for(engine.translate_batch(text, wanted), self.batch_timeout_s)
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                engine.name.value,
                f"batch translation timed out after {self.batch_timeout_s}s",
                error_code=ErrorCode.TRANSLATION_FAILED,
            ) from exc
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(
                engine.name.value, str(exc), error_code=ErrorCode.TRANSLATION_FAILED
            ) from exc

        results: dict[str, TranslationResult] = {}
        for language in wanted:
            out = raw.get(language)
            if out is None:
                continue
            try:
                accepted = check_translation(text, out, language, engine=engine.name.value)
            except TranslationRejectedError as exc:
                logger.info("batch translation rejected (%s)", exc)
                continue
            results[language] = TranslationResult(
                text=accepted, engine=engine.name, quality=engine.quality
            )

        missing = [lang for lang in wanted if lang not in results]
        if missing:
            logger.info(
                "batch translation partial (engine=%s, accepted=%s, retrying=%s)",
                engine.name.value,
                sorted(results),
                missing,
            )
            results.update(await self.translate_each(text, missing))
        return results

    async def translate_each(self, text: str, languages: list[str]) -> dict[str, TranslationResult]:
        """Per-language translation with bounded concurrency."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(language: str) -> tuple[str, TranslationResult]:
            async with semaphore:
                return language, await self.translate_one(text, language)

        pairs = await asyncio.gather(*(_one(lang) for lang in dict.fromkeys(languages)))
        return dict(pairs)

    async def close(self) -> None:
        for engine in self._all:
            await engine.close()


def build_engine_chain(settings: Settings) -> TranslationEngineChain:
    """Assemble premium -> secondary -> statistical -> local from Settings."""
    engine_cfg = settings.translation_engine
    engines: list[TranslationEngine] = []
    for profile, name, quality in (
        ("premium", EngineName.PREMIUM, 0.95),
        ("secondary", EngineName.SECONDARY, 0.9),
    ):
        cfg = settings.engine_config_for(profile)
        if not str(cfg.get("api_key") or "").strip():
            logger.info("translation engine not configured, skipping (engine=%s)", name.value)
            continue
        cfg["timeout"] = engine_cfg.timeout_s
        engines.append(
            LLMTranslationEngine(
                get_llm_provider(cfg),
                name=name,
                quality=quality,
                temperature=engine_cfg.temperature,
            )
        )
    engines.append(
        GoogleTranslateEngine(
            api_key=engine_cfg.google_api_key,
            base_url=engine_cfg.google_base_url,
            use_public_endpoint=engine_cfg.google_use_public_endpoint,
            timeout=engine_cfg.timeout_s,
        )
    )
    engines.append(LocalPassthroughEngine())
    return TranslationEngineChain(
        engines,
        timeout_s=engine_cfg.timeout_s,
        batch_timeout_s=engine_cfg.batch_timeout_s,
        concurrency=engine_cfg.concurrency,
    )
