"""Configuration management using pydantic-settings."""

from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from livetrans.exceptions import ConfigurationError

_ENV_FILES = (".env", "../.env", "../../.env")

_REPO_ROOT = Path(__file__).resolve().parents[3]


def _resolve_repo_path(value: str) -> str:
    raw = str(value or "").strip()
    if not raw:
        return raw
    p = Path(raw)
    if p.is_absolute():
        return str(p)
    return str((_REPO_ROOT / p).resolve())


class ASRConfig(BaseSettings):
    """Speech-to-text provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ASR_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider: str = "openai_whisper"
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "whisper-1"
    language: str | None = "en"
    temperature: float = Field(default=0.0, ge=0, le=1)
    prompt: str = ""
    timeout: float = 60.0  # per request (seconds)
    max_concurrent: int = Field(default=4, ge=1)


class VADConfig(BaseSettings):
    """Energy VAD and segmenter configuration."""

    model_config = SettingsConfigDict(
        env_prefix="VAD_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider: str = "energy"
    sample_rate: int = Field(default=16000, ge=8000)
    # Smoothed RMS (float PCM in [-1, 1]) above this value counts as speech.
    threshold: float = Field(default=0.02, gt=0, le=1)
    smoothing_window: int = Field(default=5, ge=1)

    silence_duration_s: float = Field(default=1.5, gt=0)
    max_speech_s: float = Field(default=15.0, gt=0)
    min_speech_s: float = Field(default=1.0, ge=0)
    near_silence_rms: float = Field(default=0.005, ge=0)
    fallback_interval_s: float = Field(default=10.0, gt=0)

    @model_validator(mode="after")
    def _validate_windows(self) -> "VADConfig":
        if float(self.min_speech_s) >= float(self.max_speech_s):
            raise ConfigurationError("VAD_MIN_SPEECH_S must be < VAD_MAX_SPEECH_S")
        return self


class ReconcilerConfig(BaseSettings):
    """Transcript reconciliation thresholds."""

    model_config = SettingsConfigDict(
        env_prefix="RECONCILER_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    duplicate_window_ms: int = Field(default=1000, ge=0)
    duplicate_similarity: float = Field(default=0.9, gt=0, le=1)
    merge_similarity: float = Field(default=0.8, gt=0, le=1)
    max_overlap_words: int = Field(default=5, ge=1)
    min_overlap_word_chars: int = Field(default=3, ge=1)
    min_fragment_chars: int = Field(default=3, ge=0)
    min_sentence_chars: int = Field(default=5, ge=1)
    force_boundary_chars: int = Field(default=100, ge=10)
    closing_phrases: list[str] = Field(default_factory=list)
    hallucination_phrases: list[str] = Field(
        default_factory=lambda: [
            "thank you for watching",
            "thanks for watching",
            "please like and subscribe",
            "don't forget to subscribe",
            "see you next time",
            "bye bye",
            "this is a live speech transcription",
            "this is a live conversation",
            "please transcribe accurately",
            "with proper spelling and punctuation",
            "use proper spelling for technical terms",
            "avoid filler words",
            "do not add any additional text",
        ]
    )
    prompt_echo_phrases: list[str] = Field(
        default_factory=lambda: [
            "thankyou",
            "use proper grammar",
            "transcribe exactly what is spoken",
            "use proper spelling",
            "use proper punctuation",
        ]
    )


class TranslationQueueConfig(BaseSettings):
    """Debounce and fan-out settings of the translation job queue."""

    model_config = SettingsConfigDict(
        env_prefix="TRANSLATION_QUEUE_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_delay_ms: int = Field(default=1000, ge=0)
    high_priority_delay_ms: int = Field(default=500, ge=0)
    per_language_delay_ms: int = Field(default=200, ge=0)
    max_language_delay_ms: int = Field(default=2000, ge=0)
    high_priority_threshold: int = 15
    fallback_concurrency: int = Field(default=3, ge=1)
    # Cached translations below this quality are re-translated (local passthrough is 0.3).
    min_cache_quality: float = Field(default=0.5, ge=0, le=1)
    priority_languages: list[str] = Field(default_factory=lambda: ["ko", "zh", "hi"])
    target_languages: list[str] = Field(default_factory=lambda: ["ko", "zh"])


class TranslationEngineProfile(BaseSettings):
    """LLM provider profile backing one generative translation engine."""

    provider: str = "openai"
    base_url: str | None = None
    api_key: str = ""
    model: str = "gpt-4o-mini"


class TranslationPremiumConfig(TranslationEngineProfile):
    model_config = SettingsConfigDict(
        env_prefix="TRANSLATION_PREMIUM_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )


class TranslationSecondaryConfig(TranslationEngineProfile):
    model_config = SettingsConfigDict(
        env_prefix="TRANSLATION_SECONDARY_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider: str = "gemini"
    model: str = "gemini-1.5-flash"


class TranslationEngineConfig(BaseSettings):
    """Engine chain limits and the statistical (Google) engine."""

    model_config = SettingsConfigDict(
        env_prefix="TRANSLATION_ENGINE_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    timeout_s: float = Field(default=20.0, gt=0)
    batch_timeout_s: float = Field(default=30.0, gt=0)
    concurrency: int = Field(default=3, ge=1)
    temperature: float = Field(default=0.3, ge=0, le=2)
    google_api_key: str = ""
    google_base_url: str = "https://translation.googleapis.com"
    # Keyless public endpoint, used only when no API key is set.
    google_use_public_endpoint: bool = False


class TranslationCacheConfig(BaseSettings):
    """Retention and eviction policy of the translation cache."""

    model_config = SettingsConfigDict(
        env_prefix="TRANSLATION_CACHE_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend: str = "postgres"  # "postgres" | "memory"
    ttl_days_premium: int = Field(default=30, ge=1)
    ttl_days_secondary: int = Field(default=21, ge=1)
    ttl_days_statistical: int = Field(default=14, ge=1)
    ttl_days_local: int = Field(default=7, ge=1)
    max_size_mb: float = Field(default=100.0, gt=0)
    min_usage_count: int = Field(default=2, ge=1)
    low_usage_age_days: int = Field(default=30, ge=1)
    max_age_days: int = Field(default=60, ge=1)
    row_overhead_bytes: int = Field(default=100, ge=0)
    sweep_interval_s: float = Field(default=3600.0, gt=0)

    @model_validator(mode="after")
    def _validate_backend(self) -> "TranslationCacheConfig":
        if str(self.backend).strip().lower() not in {"postgres", "memory"}:
            raise ConfigurationError(
                f"TRANSLATION_CACHE_BACKEND must be postgres or memory (got {self.backend!r})"
            )
        if int(self.low_usage_age_days) > int(self.max_age_days):
            raise ConfigurationError(
                "TRANSLATION_CACHE_LOW_USAGE_AGE_DAYS must be <= TRANSLATION_CACHE_MAX_AGE_DAYS"
            )
        return self

    def ttl_days_for(self, engine: str) -> int:
        name = str(engine or "").strip().lower()
        mapping = {
            "premium": self.ttl_days_premium,
            "secondary": self.ttl_days_secondary,
            "statistical": self.ttl_days_statistical,
            "local": self.ttl_days_local,
        }
        if name not in mapping:
            raise ConfigurationError(f"Unknown translation engine: {engine!r}")
        return int(mapping[name])


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"
    console: bool = True
    file: str | None = None
    max_bytes: int = Field(default=10 * 1024 * 1024, ge=0)
    backup_count: int = Field(default=5, ge=0)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILES, env_file_encoding="utf-8", extra="ignore"
    )

    log_dir: str = "./logs"

    # Database
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "livetrans"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # Redis
    redis_url: str = "redis://localhost:6379"
    job_queue_key: str = "livetrans:translation:jobs"
    stats_interval_s: float = Field(default=10.0, gt=0)

    # Speech
    asr: ASRConfig = ASRConfig()
    vad: VADConfig = VADConfig()
    reconciler: ReconcilerConfig = ReconcilerConfig()

    # Translation
    translation_queue: TranslationQueueConfig = TranslationQueueConfig()
    translation_premium: TranslationPremiumConfig = TranslationPremiumConfig()
    translation_secondary: TranslationSecondaryConfig = TranslationSecondaryConfig()
    translation_engine: TranslationEngineConfig = TranslationEngineConfig()
    translation_cache: TranslationCacheConfig = TranslationCacheConfig()

    # Logging
    logging: LoggingSettings = LoggingSettings()

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        # Running apps with `--directory apps/*` changes CWD; keep paths stable.
        self.log_dir = _resolve_repo_path(self.log_dir)
        return self

    @property
    def database_url(self) -> str:
        return f"postgresql://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    def engine_config_for(self, profile: str) -> dict[str, Any]:
        """Return an LLM config dict for the provider registry."""
        name = str(profile or "").strip().lower()
        if name == "premium":
            cfg = self.translation_premium.model_dump()
        elif name == "secondary":
            cfg = self.translation_secondary.model_dump()
        else:
            raise ConfigurationError(
                f"Unknown translation profile: {profile!r} (expected: premium/secondary)"
            )

        provider = str(cfg.get("provider") or "").strip().lower()
        if not provider:
            raise ConfigurationError(f"Translation profile {name!r} is not configured (missing provider)")

        base_url = str(cfg.get("base_url") or "").strip()
        if provider in {"openai", "openai_compat"}:
            cfg["base_url"] = base_url or "https://api.openai.com/v1"
        else:
            if base_url:
                cfg["base_url"] = base_url
            else:
                cfg.pop("base_url", None)
        return cfg
