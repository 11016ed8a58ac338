"""Locate the JSON object inside a model reply.

Vision-language models wrap their answer in prose or markdown fences often
enough that ``json.loads`` on the raw reply is only the fast path.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .errors import BackendProtocolError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)


def strip_code_fences(text: str) -> str:
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def find_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object in *text*, or ``None``."""
    if not text or not text.strip():
        return None

    body = strip_code_fences(text)
    try:
        parsed = json.loads(body)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    start = body.find("{")
    while start != -1:
        end = _balanced_end(body, start)
        if end is not None:
            try:
                candidate = json.loads(body[start : end + 1])
            except ValueError:
                candidate = None
            if isinstance(candidate, dict):
                return candidate
        start = body.find("{", start + 1)
    return None


def require_json_object(text: str) -> dict[str, Any]:
    payload = find_json_object(text)
    if payload is None:
        logger.debug("No JSON object in model reply (%d chars)", len(text or ""))
        raise BackendProtocolError("no JSON object in model reply", raw=text)
    return payload


def _balanced_end(text: str, start: int) -> int | None:
    """Index of the ``}`` closing the ``{`` at *start*; string literals are skipped."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return index
    return None
