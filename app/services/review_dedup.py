from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from app.schemas.review import ReviewFinding

logger = logging.getLogger(__name__)

TITLE_THRESHOLD = 0.70
DESCRIPTION_THRESHOLD = 0.80
CURRENT_VALUE_THRESHOLD = 0.90

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    if not text:
        return ""
    lowered = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def _word_set(text: str | None) -> set[str]:
    return set(normalize_text(text).split())


def jaccard_similarity(a: str | None, b: str | None) -> float:
    """Word-set Jaccard similarity; an empty side never matches."""
    words_a = _word_set(a)
    words_b = _word_set(b)
    if not words_a or not words_b:
        return 0.0
    intersection = len(words_a & words_b)
    union = len(words_a | words_b)
    return intersection / union


def _base_key(finding: ReviewFinding) -> tuple[str, str]:
    return finding.category, finding.target_ref or "none"


def _duplicate_reason(candidate: ReviewFinding, existing: ReviewFinding) -> str | None:
    if jaccard_similarity(candidate.title, existing.title) > TITLE_THRESHOLD:
        return "title"

    if candidate.description and existing.description:
        if jaccard_similarity(candidate.description, existing.description) > DESCRIPTION_THRESHOLD:
            return "description"

    if candidate.current_value and existing.current_value:
        candidate_norm = normalize_text(candidate.current_value)
        if candidate_norm and candidate_norm == normalize_text(existing.current_value):
            return "current_value"
        if jaccard_similarity(candidate.current_value, existing.current_value) > CURRENT_VALUE_THRESHOLD:
            return "current_value"

    return None


def deduplicate_findings(findings: Iterable[ReviewFinding]) -> list[ReviewFinding]:
    """Greedy single-pass removal of near-duplicate findings.

    Each finding is compared only against already kept findings with the same
    ``(category, target_ref)`` key. Order is preserved and elements are never
    modified.
    """
    kept: list[ReviewFinding] = []
    kept_by_key: dict[tuple[str, str], list[ReviewFinding]] = {}
    total = 0

    for finding in findings:
        total += 1
        key = _base_key(finding)
        bucket = kept_by_key.setdefault(key, [])

        reason = None
        for existing in bucket:
            reason = _duplicate_reason(finding, existing)
            if reason:
                logger.debug(
                    "review_dedup_skipped id=%s duplicate_of=%s by=%s",
                    finding.id,
                    existing.id,
                    reason,
                )
                break
        if reason:
            continue

        bucket.append(finding)
        kept.append(finding)

    removed = total - len(kept)
    if removed:
        logger.info("review_dedup_removed count=%s kept=%s", removed, len(kept))
    return kept


def union_findings(groups: Sequence[Sequence[ReviewFinding]]) -> list[ReviewFinding]:
    return [finding for group in groups for finding in group]
