"""Lenient JSON extraction for model output.

Models wrap JSON in markdown fences, add prose around it, leave trailing
commas or comments, emit smart quotes or raw newlines inside strings, and get
cut off by token limits. ``parse_llm_json`` tries progressively more invasive
repairs and reports failure instead of raising.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_FENCED_ANY = re.compile(r"```\s*([\s\S]*?)```")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


@dataclass(frozen=True)
class ParseResult:
    success: bool
    data: Any = None
    error: str | None = None
    raw_response: str | None = None


def _extract_from_code_block(text: str) -> str | None:
    match = _FENCED_JSON.search(text)
    if match:
        return match.group(1).strip()
    match = _FENCED_ANY.search(text)
    if match:
        content = match.group(1).strip()
        if content.startswith("{") or content.startswith("["):
            return content
    return None


def _extract_balanced(text: str) -> str | None:
    starts = [idx for idx in (text.find("{"), text.find("[")) if idx != -1]
    if not starts:
        return None
    start = min(starts)
    open_char = text[start]
    close_char = "}" if open_char == "{" else "]"

    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        char = text[idx]
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]

    # Unbalanced: hand back the tail so truncation repair can try.
    return text[start:]


def _remove_comments(text: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False
    idx = 0
    while idx < len(text):
        char = text[idx]
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            idx += 1
            continue
        if char == '"':
            in_string = True
            out.append(char)
            idx += 1
            continue
        if text.startswith("//", idx):
            newline = text.find("\n", idx)
            idx = len(text) if newline == -1 else newline
            continue
        if text.startswith("/*", idx):
            end = text.find("*/", idx + 2)
            idx = len(text) if end == -1 else end + 2
            continue
        out.append(char)
        idx += 1
    return "".join(out)


def _escape_control_chars(text: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            elif char == "\n":
                out.append("\\n")
                continue
            elif char == "\r":
                out.append("\\r")
                continue
            elif char == "\t":
                out.append("\\t")
                continue
            elif ord(char) < 0x20:
                continue
        elif char == '"':
            in_string = True
        out.append(char)
    return "".join(out)


def _sanitize(text: str) -> str:
    cleaned = text.replace("\ufeff", "")
    cleaned = cleaned.replace("\u201c", '"').replace("\u201d", '"')
    cleaned = cleaned.replace("\u2018", "'").replace("\u2019", "'")
    cleaned = _remove_comments(cleaned)
    cleaned = _TRAILING_COMMA.sub(r"\1", cleaned)
    return cleaned.strip()


def _aggressive_sanitize(text: str) -> str:
    cleaned = _escape_control_chars(text)
    return _TRAILING_COMMA.sub(r"\1", cleaned)


def _repair_truncated(text: str) -> str:
    stack: list[str] = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack:
            stack.pop()

    repaired = text
    if in_string:
        repaired += '"'
    repaired = repaired.rstrip()
    # Drop a dangling separator or a key left without a value.
    repaired = re.sub(r'(,\s*"[^"]*"\s*:?\s*|,\s*|:\s*)$', "", repaired)
    return repaired + "".join(reversed(stack))


def parse_llm_json(text: str | None) -> ParseResult:
    if not text or not isinstance(text, str):
        return ParseResult(success=False, error="Empty or invalid input")

    candidate = _extract_from_code_block(text) or _extract_balanced(text)
    if not candidate:
        logger.warning("llm_json_not_found preview=%r", text[:200])
        return ParseResult(success=False, error="No JSON found in response", raw_response=text[:1000])

    attempts = (
        ("as_is", lambda value: value),
        ("sanitized", _sanitize),
        ("aggressive", lambda value: _aggressive_sanitize(_sanitize(value))),
        ("truncation_repair", lambda value: _repair_truncated(_aggressive_sanitize(_sanitize(value)))),
    )
    last_error = ""
    for stage, transform in attempts:
        try:
            data = json.loads(transform(candidate))
        except json.JSONDecodeError as exc:
            last_error = str(exc)
            continue
        if stage != "as_is":
            logger.debug("llm_json_parsed stage=%s", stage)
        return ParseResult(success=True, data=data)

    logger.warning("llm_json_parse_failed error=%s", last_error)
    return ParseResult(
        success=False,
        error=f"JSON parse error: {last_error}",
        raw_response=text[:2000],
    )
