"""Classify provider failures into retry / fallback decisions.

Structured signals are checked first: engine errors, builtin timeout and
connection errors, and the HTTP status carried by SDK exceptions
(``status_code`` on openai/anthropic, ``code`` on google-genai). Substring
matching on the message is the last resort for providers that surface errors
as plain text.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from enum import Enum

from app.ai.errors import AIEngineError, MissingCredentialsError


class ErrorCategory(str, Enum):
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    OVERLOAD = "overload"
    AUTH = "auth"
    NOT_FOUND = "not_found"


_TRANSIENT = frozenset(
    {
        ErrorCategory.RATE_LIMIT,
        ErrorCategory.SERVER_ERROR,
        ErrorCategory.NETWORK,
        ErrorCategory.OVERLOAD,
    }
)


@dataclass(frozen=True)
class RetryDecision:
    category: ErrorCategory | None
    is_transient: bool
    is_fallback_worthy: bool


# Order matters: overload before server errors (Anthropic reports overload as 529),
# server errors before not-found ("service unavailable").
_MESSAGE_PATTERNS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.RATE_LIMIT, ("rate limit", "rate_limit", "429", "too many requests", "resource_exhausted", "quota")),
    (ErrorCategory.OVERLOAD, ("overloaded", "overload", "capacity", "529")),
    (
        ErrorCategory.SERVER_ERROR,
        ("500", "502", "503", "504", "internal server error", "bad gateway", "service unavailable", "gateway timeout"),
    ),
    (
        ErrorCategory.NETWORK,
        (
            "timeout",
            "timed out",
            "econnrefused",
            "econnreset",
            "connection reset",
            "connection refused",
            "connection error",
            "socket hang up",
            "network",
        ),
    ),
    (
        ErrorCategory.AUTH,
        (
            "invalid api key",
            "invalid_api_key",
            "incorrect api key",
            "invalid x-api-key",
            "api key not valid",
            "unauthorized",
            "authentication",
            "permission denied",
            "401",
            "403",
        ),
    ),
    (
        ErrorCategory.NOT_FOUND,
        ("model_not_found", "not found", "not_found", "404", "does not exist", "not available", "unavailable"),
    ),
)


def _decision(category: ErrorCategory | None) -> RetryDecision:
    if category is None:
        return RetryDecision(category=None, is_transient=False, is_fallback_worthy=False)
    return RetryDecision(
        category=category,
        is_transient=category in _TRANSIENT,
        is_fallback_worthy=True,
    )


def _status_of(error: BaseException) -> int | None:
    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def _category_from_status(status: int) -> ErrorCategory | None:
    if status == 429:
        return ErrorCategory.RATE_LIMIT
    if status == 529:
        return ErrorCategory.OVERLOAD
    if status >= 500:
        return ErrorCategory.SERVER_ERROR
    if status == 408:
        return ErrorCategory.NETWORK
    if status in {401, 403}:
        return ErrorCategory.AUTH
    if status == 404:
        return ErrorCategory.NOT_FOUND
    return None


def _compile(patterns: tuple[str, ...]) -> re.Pattern[str]:
    # bare status numbers must not match inside larger numbers ("max_tokens 5000")
    return re.compile("|".join(rf"\b{re.escape(p)}\b" if p.isdigit() else re.escape(p) for p in patterns))


_MESSAGE_REGEXES = tuple((category, _compile(patterns)) for category, patterns in _MESSAGE_PATTERNS)


def _category_from_text(error: BaseException) -> ErrorCategory | None:
    message = str(error).lower()
    name = type(error).__name__.lower()
    for category, regex in _MESSAGE_REGEXES:
        if regex.search(message):
            return category
    if "timeout" in name or "connection" in name:
        return ErrorCategory.NETWORK
    if "ratelimit" in name:
        return ErrorCategory.RATE_LIMIT
    return None


def categorize_error(error: BaseException) -> ErrorCategory | None:
    if isinstance(error, MissingCredentialsError):
        return ErrorCategory.AUTH
    if isinstance(error, AIEngineError):
        # status_code on engine errors is an HTTP mapping, not a provider response
        return None
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorCategory.NETWORK

    status = _status_of(error)
    if status is not None:
        category = _category_from_status(status)
        if category is not None:
            return category

    return _category_from_text(error)


def classify_error(error: BaseException) -> RetryDecision:
    """Map a failure to ``RetryDecision``. Pure; no I/O."""
    return _decision(categorize_error(error))
