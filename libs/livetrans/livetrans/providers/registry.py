"""Provider factory and registry."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from livetrans.exceptions import ConfigurationError
from livetrans.providers.asr.base import ASRProvider
from livetrans.providers.llm.base import LLMProvider
from livetrans.providers.vad.base import VADProvider


def get_asr_provider(config: Mapping[str, Any]) -> ASRProvider:
    """Get ASR provider based on configuration."""
    provider_type = str(config.get("provider", "openai_whisper")).strip().lower()

    match provider_type:
        case "openai_whisper" | "whisper" | "openai":
            from livetrans.providers.asr.openai_whisper import OpenAIWhisperProvider

            return OpenAIWhisperProvider(
                base_url=str(config.get("base_url") or "https://api.openai.com/v1"),
                api_key=str(config.get("api_key") or ""),
                model=str(config.get("model") or "whisper-1"),
                temperature=float(config.get("temperature", 0.0)),
                max_concurrent=int(config.get("max_concurrent", 4)),
                timeout=float(config.get("timeout", 60.0)),
            )
        case _:
            raise ConfigurationError(f"Unknown ASR provider: {provider_type}")


def get_llm_provider(config: Mapping[str, Any]) -> LLMProvider:
    """Get LLM provider based on configuration."""
    provider_type = str(config.get("provider", "openai")).strip().lower()

    match provider_type:
        case "openai" | "openai_compat":
            from livetrans.providers.llm.openai_compat import OpenAICompatProvider

            return OpenAICompatProvider(
                api_key=str(config.get("api_key") or ""),
                model=str(config.get("model") or "gpt-4o-mini"),
                base_url=config.get("base_url"),
                provider=provider_type,
                timeout=float(config.get("timeout", 30.0)),
            )
        case "gemini":
            from livetrans.providers.llm.gemini import GeminiProvider

            api_key = str(config.get("api_key") or "").strip()
            model = str(config.get("model") or "").strip()
            if not api_key or not model:
                raise ConfigurationError(
                    f"Gemini provider requires api_key/model (got api_key={bool(api_key)} model={model!r})"
                )
            return GeminiProvider(api_key=api_key, model=model, base_url=config.get("base_url"))
        case "anthropic" | "claude":
            from livetrans.providers.llm.anthropic import AnthropicProvider

            api_key = str(config.get("api_key") or "").strip()
            if not api_key:
                raise ConfigurationError("Anthropic provider requires api_key")
            return AnthropicProvider(
                api_key=api_key,
                model=str(config.get("model") or "").strip() or "claude-3-5-haiku-latest",
                base_url=config.get("base_url"),
                timeout=float(config.get("timeout", 30.0)),
            )
        case _:
            raise ConfigurationError(f"Unknown LLM provider: {provider_type}")


def get_vad_provider(config: Mapping[str, Any]) -> VADProvider:
    provider_type = str(config.get("provider", "energy")).strip().lower()

    match provider_type:
        case "energy" | "rms":
            from livetrans.providers.vad.energy import EnergyVAD

            return EnergyVAD(
                sample_rate=int(config.get("sample_rate", 16000)),
                threshold=float(config.get("threshold", 0.02)),
                smoothing_window=int(config.get("smoothing_window", 5)),
            )
        case _:
            raise ConfigurationError(f"Unknown VAD provider: {provider_type}")
