"""Parsing helpers for JSON objects returned by generative engines."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from typing import Any

_THINK_BLOCK_RE = re.compile(r"^\s*<think>[\s\S]*?</think>\s*", re.IGNORECASE)
_CODE_BLOCK_PATTERNS = (
    re.compile(r"```json\s*([\s\S]*?)\s*```"),
    re.compile(r"```\s*([\s\S]*?)\s*```"),
)


def parse_llm_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object from model output.

    Accepts plain JSON, ```json fenced blocks and objects surrounded by prose
    (the outermost `{...}` span is tried when the whole text does not parse).

    Raises:
        json.JSONDecodeError: If no JSON object can be recovered.
    """
    raw = _THINK_BLOCK_RE.sub("", str(text or "").strip()).strip()
    for pattern in _CODE_BLOCK_PATTERNS:
        match = pattern.search(raw)
        if match:
            raw = match.group(1).strip()
            break

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        start = raw.find("{")
        end = raw.rfind("}")
        if start == -1 or end <= start:
            raise exc
        data = json.loads(raw[start : end + 1])

    if not isinstance(data, dict):
        raise json.JSONDecodeError("Expected a JSON object", raw, 0)
    return data


def extract_string_fields(text: str, keys: Iterable[str]) -> dict[str, str]:
    """Best-effort `"key": "value"` extraction from malformed JSON.

    Used when a batch translation response is truncated or otherwise not
    parseable; only keys whose value can be found are returned.
    """
    raw = str(text or "")
    out: dict[str, str] = {}
    for key in keys:
        match = re.search(rf'"{re.escape(key)}"\s*:\s*"((?:[^"\\]|\\.)*)"', raw)
        if not match:
            continue
        value = match.group(1)
        try:
            value = json.loads(f'"{value}"')
        except json.JSONDecodeError:
            pass
        if str(value).strip():
            out[key] = str(value).strip()
    return out
