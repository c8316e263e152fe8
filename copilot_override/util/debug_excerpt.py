"""
日志用正文摘要：上游错误响应、调试请求体在写日志前统一截断，只保留开头部分。
"""

from __future__ import annotations

import json
import logging
from typing import Any

from copilot_override.util.logger import logger

DEFAULT_EXCERPT_MAX_LEN = 2000


def excerpt_for_log(text: str | bytes, max_len: int = DEFAULT_EXCERPT_MAX_LEN) -> str:
    """Trim *text* to a readable excerpt; bytes are decoded leniently."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    if not text:
        return ""
    s = str(text).strip()
    if len(s) <= max_len:
        return s
    return f"{s[:max_len]} ... [truncated, total {len(s)} chars]"


def debug_log_body(label: str, body: dict[str, Any], *, max_len: int = DEFAULT_EXCERPT_MAX_LEN) -> None:
    """
    仅当 DEBUG 开启时记录一次请求体摘要。
    label: 如 "chat_outbound", "code_outbound"
    """
    if not logger.isEnabledFor(logging.DEBUG):
        return
    excerpt = excerpt_for_log(json.dumps(body, ensure_ascii=False), max_len=max_len)
    logger.debug("%s body_excerpt=%s", label, excerpt)
