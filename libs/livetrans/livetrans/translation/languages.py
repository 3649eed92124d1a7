"""Language names, engine-specific codes and expected scripts."""

from __future__ import annotations

import re

# English names used in generative engine prompts.
LANGUAGE_NAMES: dict[str, str] = {
    "ko": "Korean",
    "ja": "Japanese",
    "zh": "Chinese",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "ru": "Russian",
    "it": "Italian",
    "pl": "Polish",
    "nl": "Dutch",
    "da": "Danish",
    "sv": "Swedish",
    "no": "Norwegian",
    "fi": "Finnish",
    "cs": "Czech",
    "sk": "Slovak",
    "sl": "Slovenian",
    "et": "Estonian",
    "lv": "Latvian",
    "lt": "Lithuanian",
    "hu": "Hungarian",
    "bg": "Bulgarian",
    "ro": "Romanian",
    "el": "Greek",
    "tr": "Turkish",
    "ar": "Arabic",
    "id": "Indonesian",
    "uk": "Ukrainian",
    "hi": "Hindi",
    "en": "English",
}

# Endonyms for the local passthrough tag.
NATIVE_NAMES: dict[str, str] = {
    "ko": "한국어",
    "ja": "日本語",
    "zh": "中文",
    "es": "Español",
    "fr": "Français",
    "de": "Deutsch",
    "it": "Italiano",
    "pt": "Português",
    "ru": "Русский",
    "ar": "العربية",
    "hi": "हिन्दी",
}

_GOOGLE_CODES = {"zh": "zh-CN"}

_HANGUL = r"가-힯ᄀ-ᇿ㄰-㆏"
_HAN = r"一-鿿㐀-䶿"
_KANA = r"぀-ヿ"
_SCRIPT_RES: dict[str, re.Pattern[str]] = {
    "ko": re.compile(f"[{_HANGUL}]"),
    "zh": re.compile(f"[{_HAN}]"),
    "ja": re.compile(f"[{_KANA}{_HAN}]"),
    "hi": re.compile(r"[ऀ-ॿ]"),
    "ar": re.compile(r"[؀-ۿ]"),
    "ru": re.compile(r"[Ѐ-ӿ]"),
    "uk": re.compile(r"[Ѐ-ӿ]"),
    "bg": re.compile(r"[Ѐ-ӿ]"),
    "el": re.compile(r"[Ͱ-Ͽ]"),
}
_LATIN_RE = re.compile(r"[A-Za-zÀ-ɏ]")


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def google_code(code: str) -> str:
    return _GOOGLE_CODES.get(code, code)


def has_expected_script(text: str, code: str) -> bool:
    """True when `text` contains at least one character of the language's script."""
    pattern = _SCRIPT_RES.get(code, _LATIN_RE)
    return bool(pattern.search(text or ""))
