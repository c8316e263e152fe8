"""
Copilot 请求体改写：chat 与 code(codex) 两类端点在转发前的字段替换规则。
只读写下列具名字段，其余字段原样保留（包括顺序）。
"""

from __future__ import annotations

import json
from typing import Any

from copilot_override.config.settings import Settings

LOCALE_MARKER = "Respond in the following locale"
DEFAULT_LOCALE = "zh_CN"
STABLE_CODE_MODEL_MARKER = "stable-code"
DEEPSEEK_CODER_MODEL_PREFIX = "deepseek-coder"

_INTENT_FIELDS = ("intent", "intent_threshold", "intent_content")
_CODE_DROPPED_FIELDS = ("extra", "nwo")
_FIM_TEMPLATE = "<fim_prefix>{prompt}<fim_suffix>{suffix}<fim_middle>"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _cap_max_tokens(body: dict[str, Any], ceiling: int) -> None:
    value = body.get("max_tokens")
    if _is_number(value) and value > ceiling:
        body["max_tokens"] = ceiling


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def locale_suffix(cfg: Settings) -> str:
    locale = cfg.chat_locale or DEFAULT_LOCALE
    return f"{LOCALE_MARKER}: {locale}."


def _append_locale(body: dict[str, Any], cfg: Settings) -> None:
    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        return
    last = messages[-1]
    if not isinstance(last, dict):
        return
    content = last.get("content")
    if content is None:
        content = ""
    if not isinstance(content, str):
        # multi-part content arrays are left as sent
        return
    if LOCALE_MARKER in content:
        return
    last["content"] = content + locale_suffix(cfg)


def transform_chat(body: dict[str, Any], cfg: Settings) -> dict[str, Any]:
    """Rewrite a chat completion body in place and return it."""
    model = body.get("model")
    mapped = cfg.chat_model_map.get(model) if isinstance(model, str) else None
    body["model"] = mapped if mapped is not None else cfg.chat_model_default

    if "function_call" not in body:
        _append_locale(body, cfg)

    for field in _INTENT_FIELDS:
        body.pop(field, None)

    _cap_max_tokens(body, cfg.chat_max_tokens)
    return body


def fim_prompt(prompt: str, suffix: str) -> str:
    return _FIM_TEMPLATE.format(prompt=prompt, suffix=suffix)


def _rebuild_as_stable_code(body: dict[str, Any]) -> None:
    prompt = _as_text(body.pop("prompt", None))
    suffix = _as_text(body.pop("suffix", None))
    body["messages"] = [{"role": "user", "content": fim_prompt(prompt, suffix)}]


def transform_code(body: dict[str, Any], cfg: Settings) -> dict[str, Any]:
    """Rewrite a code completion body in place and return it.

    The branch is chosen by the configured ``code_instruct_model``, never by
    the model the caller asked for.
    """
    for field in _CODE_DROPPED_FIELDS:
        body.pop(field, None)

    model = cfg.code_instruct_model
    body["model"] = model
    _cap_max_tokens(body, cfg.codex_max_tokens)

    if STABLE_CODE_MODEL_MARKER in model:
        _rebuild_as_stable_code(body)
    elif model.startswith(DEEPSEEK_CODER_MODEL_PREFIX):
        n = body.get("n")
        if _is_number(n) and n > 1:
            body["n"] = 1
    return body


def encode_body(body: dict[str, Any]) -> bytes:
    """Serialize an outbound body.

    ``json`` never escapes ``<``/``>``, so FIM markers reach the upstream
    literally; ``ensure_ascii=False`` keeps non-ASCII text literal too.
    Lone surrogates cannot be UTF-8 encoded, so such bodies go out
    ``\\u``-escaped, the way the caller sent them.
    """
    try:
        return json.dumps(body, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except UnicodeEncodeError:
        return json.dumps(body, ensure_ascii=True, separators=(",", ":")).encode("ascii")
