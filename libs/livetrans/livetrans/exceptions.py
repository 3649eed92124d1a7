"""livetrans exception hierarchy."""

from __future__ import annotations

from livetrans.error_codes import ErrorCode


class LiveTransError(Exception):
    """Base error for livetrans."""


class ConfigurationError(LiveTransError):
    """Raised when configuration or inputs are invalid."""


class ProviderError(LiveTransError):
    """Raised when an external provider call fails."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        error_code: ErrorCode | str | None = None,
    ) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.error_code = error_code


class TranslationRejectedError(LiveTransError):
    """Raised when an engine answered but the output failed quality checks."""

    def __init__(self, engine: str, language: str, reason: str) -> None:
        super().__init__(f"{engine} ({language}): {reason}")
        self.engine = engine
        self.language = language
        self.reason = reason
        self.error_code = ErrorCode.TRANSLATION_REJECTED


class CacheStoreError(LiveTransError):
    """Raised when the translation cache store cannot be read or written."""

    def __init__(self, message: str, *, error_code: ErrorCode | str = ErrorCode.CACHE_FAILED) -> None:
        super().__init__(message)
        self.error_code = error_code


class SessionClosedError(LiveTransError):
    """Raised when input arrives for a session that has already ended."""
