from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

import httpx

logger = logging.getLogger("luxe-price-agent.llm")

_FENCE_RE = re.compile(r"```(?:json|JSON)?")


class LLMParseError(ValueError):
    """The model reply could not be turned into the expected JSON document."""


async def chat_completion(
    *,
    base_url: str,
    token: Optional[str],
    model: str,
    messages: list[dict[str, str]],
    timeout_s: float,
    max_tokens: Optional[int] = None,
) -> str:
    url = f"{base_url.rstrip('/')}/chat/completions"
    payload: dict[str, Any] = {"model": model, "messages": messages}
    if max_tokens:
        payload["max_tokens"] = max_tokens
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    async with httpx.AsyncClient(timeout=timeout_s) as client:
        res = await client.post(url, headers=headers, json=payload)

    try:
        data = res.json()
    except Exception:
        data = {"raw": res.text}

    if res.status_code >= 400:
        raise httpx.HTTPStatusError(
            f"LLM returned error status={res.status_code}", request=res.request, response=res
        )

    return message_content(data)


def message_content(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") if isinstance(first.get("message"), dict) else {}
    content = message.get("content")
    return content if isinstance(content, str) else ""


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def parse_json_reply(text: str, expect_keys: tuple[str, ...] = ()) -> dict[str, Any]:
    """Parse a model reply that should hold a single JSON object.

    Markdown fences are removed first. If the reply still carries prose around
    the object, the embedded objects are scanned and the first one holding any
    of ``expect_keys`` wins over a leading example or echo.
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise LLMParseError("Model returned an empty response")

    try:
        obj = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        obj = extract_json_object(cleaned, expect_keys)
        if obj is None:
            logger.warning("llm_reply_not_json err=%s head=%r", exc, cleaned[:200])
            raise LLMParseError(f"Model reply is not valid JSON: {exc}") from exc

    if not isinstance(obj, dict):
        raise LLMParseError("Model reply is not a JSON object")
    return obj


def extract_json_object(text: str, expect_keys: tuple[str, ...] = ()) -> Optional[dict[str, Any]]:
    decoder = json.JSONDecoder()
    first: Optional[dict[str, Any]] = None
    pos = text.find("{") if text else -1
    while pos != -1:
        try:
            obj, end = decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            pos = text.find("{", pos + 1)
            continue
        if isinstance(obj, dict):
            if not expect_keys or any(key in obj for key in expect_keys):
                return obj
            if first is None:
                first = obj
        # Objects nested inside a decoded one are never top-level candidates.
        pos = text.find("{", end)
    return first
