from __future__ import annotations

import re
from typing import Any

_SENSITIVE_KEYWORDS = ("authorization", "api_key", "apikey", "token", "secret", "password")
_BEARER_PATTERN = re.compile(r"(?i)bearer\s+[a-z0-9_\-\.]+")
_KEY_PATTERN = re.compile(r"\b(sk-[a-zA-Z0-9_\-]{4})[a-zA-Z0-9_\-]+")
_SUMMARIZED_KEYS = {"content", "system_prompt", "systemprompt"}


def _is_sensitive_key(key: str) -> bool:
    normalized = key.lower().replace("-", "_")
    return any(word in normalized for word in _SENSITIVE_KEYWORDS)


def _redact_string(key: str, value: str) -> str:
    if _is_sensitive_key(key):
        return f"<redacted len={len(value)}>"

    if key.lower() in _SUMMARIZED_KEYS:
        return f"<{key} len={len(value)}>"

    value = _BEARER_PATTERN.sub("Bearer <redacted>", value)
    return _KEY_PATTERN.sub(r"\1<redacted>", value)


def redact(value: Any, key: str = "") -> Any:
    if isinstance(value, dict):
        return {k: redact(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(item, key) for item in value]
    if isinstance(value, str):
        return _redact_string(key, value)
    return value
