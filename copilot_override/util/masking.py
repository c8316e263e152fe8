"""Value masking for log output and config display."""

from __future__ import annotations

import re
from typing import Any

# Config fields whose values never reach a log line or terminal unmasked.
SECRET_FIELDS = frozenset({"codex_api_key", "chat_api_key", "auth_token"})


def mask_for_log(value: str) -> str:
    """Return a partially-masked version of *value* safe for log output.

    Rules:
    - Preserve first 3 chars + last 2 chars for values >= 10 chars.
    - Shorter values get progressively fewer visible chars.
    - Trailing/leading whitespace is collapsed before masking.
    """
    normalized = re.sub(r"\s+", " ", value).strip()
    length = len(normalized)
    if length <= 0:
        return ""
    if length == 1:
        return "*"
    if length <= 4:
        return f"{normalized[:1]}{'*' * (length - 2)}{normalized[-1:]}"

    head = 3 if length >= 10 else 2
    tail = 2
    if head + tail >= length:
        head, tail = 1, 1
    return f"{normalized[:head]}{'*' * (length - head - tail)}{normalized[-tail:]}"


def mask_config(data: dict[str, Any]) -> dict[str, Any]:
    """Copy of a config mapping with secret fields masked."""
    masked = dict(data)
    for key in SECRET_FIELDS:
        value = masked.get(key)
        if isinstance(value, str) and value:
            masked[key] = mask_for_log(value)
    return masked
