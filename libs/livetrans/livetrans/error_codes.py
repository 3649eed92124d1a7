"""Canonical error codes attached to provider and pipeline failures."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    ASR_FAILED = "ASR_FAILED"
    LLM_FAILED = "LLM_FAILED"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    TRANSLATION_FAILED = "TRANSLATION_FAILED"
    TRANSLATION_REJECTED = "TRANSLATION_REJECTED"
    CACHE_FAILED = "CACHE_FAILED"
