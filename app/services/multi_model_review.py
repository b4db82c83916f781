"""Concurrent multi-model resume review with synthesis.

Every configured model reviews the same prompt concurrently. Failed or
unparseable reviews become ``FailureReport`` entries instead of failing the
request. One success is returned as-is; several successes are deduplicated and
merged by a synthesis call, falling back to score averaging when synthesis is
unavailable.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from app.ai.errors import AllModelsFailedError, ConfigurationError
from app.ai.json_parser import parse_llm_json
from app.ai.prompts import build_review_prompt, build_synthesis_prompt, build_verification_prompt
from app.ai.registry import ProviderRegistry
from app.ai.retry import RetryPolicy, retry_async
from app.ai.types import MultiModelConfig, ReviewModelConfig
from app.schemas.review import (
    FailureReport,
    MissingSection,
    ModelReviewResult,
    MultiModelOutcome,
    ReviewFinding,
    ReviewRequest,
    ReviewStats,
)
from app.services.review_dedup import deduplicate_findings, normalize_text, union_findings

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 70
MAX_FALLBACK_STRENGTHS = 5

_CATEGORIES = {"text_improvement", "missing_section", "add_content"}
_SEVERITIES = {"critical", "important", "suggestion"}
_IMPORTANCE = {"required", "recommended", "optional"}

_INSTRUCTION_PATTERNS = (
    re.compile(
        r"^(complete|add|include|consider|ensure|update|revise|expand|improve|fix|correct|clarify)"
        r"\s+(the|your|this|more|a)\s",
        re.IGNORECASE,
    ),
    re.compile(r"^(make sure|you should|try to|it would be|would be better)", re.IGNORECASE),
    re.compile(r"\.\.\.$"),
)


class ReviewParseError(ValueError):
    pass


@dataclass(frozen=True)
class _MergedReview:
    overall_score: int
    strengths: list[str]
    findings: list[ReviewFinding]
    missing_sections: list[MissingSection]
    industry_detected: str | None


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _choice(value: Any, allowed: set[str], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


def _coerce_score(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return max(0, min(100, int(value + 0.5)))


def _average_score(results: Sequence[ModelReviewResult]) -> int:
    total = sum(result.overall_score for result in results)
    return int(total / len(results) + 0.5)


def _normalize_finding(raw: Any, fallback_id: str) -> ReviewFinding | None:
    if not isinstance(raw, Mapping):
        return None
    category = _pick(raw, "type", "category")
    title = _optional_text(raw.get("title"))
    if not isinstance(category, str) or category not in _CATEGORIES or not title:
        return None

    severity = raw.get("severity")
    suggested_value = _optional_text(_pick(raw, "suggestedValue", "suggested_value"))
    quick = _pick(raw, "canQuickApply", "quick_applicable")
    preview = _pick(raw, "previewRequired", "requires_preview")

    return ReviewFinding(
        id=_optional_text(raw.get("id")) or fallback_id,
        category=category,
        severity=_choice(severity, _SEVERITIES, "suggestion"),
        title=title,
        description=_optional_text(raw.get("description")) or "",
        target_ref=_optional_text(_pick(raw, "targetSemanticType", "target_ref")),
        current_value=_optional_text(_pick(raw, "currentValue", "current_value")),
        suggested_value=suggested_value,
        quick_applicable=(
            bool(quick) if quick is not None else category == "text_improvement" and suggested_value is not None
        ),
        requires_preview=bool(preview) if preview is not None else category != "text_improvement",
    )


def _normalize_findings(raw: Any, id_prefix: str) -> list[ReviewFinding]:
    if not isinstance(raw, list):
        return []
    findings = []
    for idx, item in enumerate(raw, start=1):
        try:
            finding = _normalize_finding(item, f"{id_prefix}-suggestion-{idx}")
        except (TypeError, ValueError):
            finding = None
        if finding is None:
            logger.debug("review_finding_skipped prefix=%s index=%s", id_prefix, idx)
            continue
        findings.append(finding)
    return findings


def _normalize_missing_sections(raw: Any) -> list[MissingSection]:
    if not isinstance(raw, list):
        return []
    sections = []
    for item in raw:
        if isinstance(item, str):
            item = {"section": item}
        if not isinstance(item, Mapping):
            continue
        section = _optional_text(item.get("section"))
        if not section:
            continue
        importance = item.get("importance")
        sections.append(
            MissingSection(
                section=section,
                importance=_choice(importance, _IMPORTANCE, "recommended"),
                reason=_optional_text(item.get("reason")) or "",
            )
        )
    return sections


def _normalize_strengths(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [text for text in (_optional_text(item) for item in raw) if text]


def _parse_review_payload(text: str) -> Mapping[str, Any]:
    parsed = parse_llm_json(text)
    if not parsed.success:
        raise ReviewParseError(parsed.error or "Failed to parse JSON")
    if not isinstance(parsed.data, Mapping):
        raise ReviewParseError("Model response is not a JSON object")
    return parsed.data


def _unique_strengths(groups: Sequence[Sequence[str]]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for group in groups:
        for strength in group:
            if strength in seen:
                continue
            seen.add(strength)
            ordered.append(strength)
    return ordered


def _union_missing_sections(groups: Sequence[Sequence[MissingSection]]) -> list[MissingSection]:
    seen: set[str] = set()
    merged = []
    for group in groups:
        for section in group:
            key = normalize_text(section.section)
            if key in seen:
                continue
            seen.add(key)
            merged.append(section)
    return merged


def is_instruction_like(value: str | None) -> bool:
    if not value:
        return False
    text = value.strip()
    return any(pattern.search(text) for pattern in _INSTRUCTION_PATTERNS)


async def _review_with_model(
    model: ReviewModelConfig,
    prompt: str,
    config: MultiModelConfig,
    registry: ProviderRegistry,
    retry_policy: RetryPolicy | None,
) -> ModelReviewResult | FailureReport:
    started = time.perf_counter()
    logger.info("multi_model_review_started model=%s", model.reference)
    try:
        handle = registry.model(model.reference)
        text = await retry_async(
            lambda: handle.generate(prompt, config.review_params),
            retry_policy,
            operation_name=f"review:{model.reference}",
        )
        payload = _parse_review_payload(text)
        score = _coerce_score(_pick(payload, "overallScore", "overall_score"))
        result = ModelReviewResult(
            model_name=model.name,
            reference=model.reference,
            findings=_normalize_findings(_pick(payload, "suggestions", "findings"), model.reference.model_id),
            overall_score=DEFAULT_SCORE if score is None else score,
            strengths=_normalize_strengths(payload.get("strengths")),
            missing_sections=_normalize_missing_sections(_pick(payload, "missingSections", "missing_sections")),
            industry_detected=_optional_text(_pick(payload, "industryDetected", "industry_detected")),
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
    except Exception as exc:  # one model must never fail the batch
        logger.warning("multi_model_review_failed model=%s error=%s", model.reference, exc)
        return FailureReport(
            model_name=model.name,
            reference=model.reference,
            error_message=str(exc) or type(exc).__name__,
        )

    logger.info(
        "multi_model_review_finished model=%s score=%s findings=%s duration_ms=%s",
        model.reference,
        result.overall_score,
        len(result.findings),
        result.duration_ms,
    )
    return result


def _fallback_merge(successes: Sequence[ModelReviewResult], findings: list[ReviewFinding]) -> _MergedReview:
    return _MergedReview(
        overall_score=_average_score(successes),
        strengths=_unique_strengths([result.strengths for result in successes])[:MAX_FALLBACK_STRENGTHS],
        findings=findings,
        missing_sections=_union_missing_sections([result.missing_sections for result in successes]),
        industry_detected=next(
            (result.industry_detected for result in successes if result.industry_detected),
            None,
        ),
    )


async def _synthesize(
    successes: Sequence[ModelReviewResult],
    findings: list[ReviewFinding],
    request: ReviewRequest,
    config: MultiModelConfig,
    registry: ProviderRegistry,
    retry_policy: RetryPolicy | None,
) -> tuple[_MergedReview, bool]:
    """Merge several reviews with the synthesis model, or average them on failure."""
    try:
        handle = registry.model(config.synthesis_model)
        prompt = build_synthesis_prompt(successes, request.resume_content)
        text = await retry_async(
            lambda: handle.generate(prompt, config.synthesis_params),
            retry_policy,
            operation_name=f"synthesis:{config.synthesis_model}",
        )
        payload = _parse_review_payload(text)
        score = _coerce_score(_pick(payload, "overallScore", "overall_score"))
        merged = _MergedReview(
            overall_score=_average_score(successes) if score is None else score,
            strengths=_normalize_strengths(payload.get("strengths")),
            findings=_normalize_findings(_pick(payload, "suggestions", "findings"), "synth"),
            missing_sections=_normalize_missing_sections(_pick(payload, "missingSections", "missing_sections")),
            industry_detected=_optional_text(_pick(payload, "industryDetected", "industry_detected")),
        )
    except Exception as exc:  # any failure degrades to averaging
        logger.warning(
            "multi_model_synthesis_fallback model=%s error=%s",
            config.synthesis_model,
            exc,
        )
        return _fallback_merge(successes, findings), False
    return merged, True


async def _verify(
    findings: list[ReviewFinding],
    request: ReviewRequest,
    config: MultiModelConfig,
    registry: ProviderRegistry,
    retry_policy: RetryPolicy | None,
) -> list[ReviewFinding]:
    if not config.verification_enabled or not findings:
        return findings
    try:
        handle = registry.model(config.synthesis_model)
        prompt = build_verification_prompt(findings, request.resume_content)
        text = await retry_async(
            lambda: handle.generate(prompt, config.verification_params),
            retry_policy,
            operation_name=f"verification:{config.synthesis_model}",
        )
    except Exception as exc:  # verification is advisory
        logger.warning("multi_model_verification_skipped error=%s", exc)
        return findings

    parsed = parse_llm_json(text)
    verdicts = parsed.data.get("verifiedSuggestions") if parsed.success and isinstance(parsed.data, Mapping) else None
    if not isinstance(verdicts, list):
        logger.warning("multi_model_verification_unparseable error=%s", parsed.error)
        return findings

    rejected = {
        str(item.get("id"))
        for item in verdicts
        if isinstance(item, Mapping) and item.get("isValid") is False
    }
    for item in verdicts:
        if isinstance(item, Mapping) and str(item.get("id")) in rejected:
            logger.debug("multi_model_verification_rejected id=%s reason=%s", item.get("id"), item.get("reason"))
    return [finding for finding in findings if finding.id not in rejected]


def _rewrite_instructions(findings: list[ReviewFinding]) -> tuple[list[ReviewFinding], int]:
    rewritten = 0
    out = []
    for finding in findings:
        if is_instruction_like(finding.suggested_value):
            rewritten += 1
            finding = finding.model_copy(
                update={"suggested_value": None, "quick_applicable": False, "requires_preview": True}
            )
        out.append(finding)
    return out, rewritten


async def run_multi_model_review(
    request: ReviewRequest,
    config: MultiModelConfig,
    *,
    registry: ProviderRegistry,
    retry_policy: RetryPolicy | None = None,
) -> MultiModelOutcome:
    if not config.is_enabled:
        raise ConfigurationError("Multi-model review is not enabled")
    if len(config.models) < config.min_models_required:
        raise ConfigurationError(f"At least {config.min_models_required} models are required")

    prompt = build_review_prompt(request.resume_content, request.semantic_map)
    settled = await asyncio.gather(
        *(_review_with_model(model, prompt, config, registry, retry_policy) for model in config.models)
    )
    successes = [item for item in settled if isinstance(item, ModelReviewResult)]
    failures = [item for item in settled if isinstance(item, FailureReport)]
    logger.info(
        "multi_model_review_settled configured=%s succeeded=%s failed=%s",
        len(config.models),
        len(successes),
        len(failures),
    )

    if not successes:
        raise AllModelsFailedError(failures)

    if len(successes) == 1:
        only = successes[0]
        return MultiModelOutcome(
            overall_score=only.overall_score,
            strengths=only.strengths,
            findings=only.findings,
            missing_sections=only.missing_sections,
            industry_detected=only.industry_detected,
            model_count=1,
            per_model_results=successes,
            failures=failures,
        )

    pooled = union_findings([result.findings for result in successes])
    compact = deduplicate_findings(pooled)
    merged, synthesized = await _synthesize(successes, compact, request, config, registry, retry_policy)

    findings = deduplicate_findings(merged.findings)
    dedup_removed = (len(pooled) - len(compact)) + (len(merged.findings) - len(findings))

    verified = await _verify(findings, request, config, registry, retry_policy)
    final_findings, rewritten = _rewrite_instructions(verified)

    return MultiModelOutcome(
        overall_score=merged.overall_score,
        strengths=merged.strengths,
        findings=final_findings,
        missing_sections=merged.missing_sections,
        industry_detected=merged.industry_detected,
        model_count=len(successes),
        per_model_results=successes,
        failures=failures,
        stats=ReviewStats(
            synthesized=synthesized,
            dedup_removed=dedup_removed,
            verification_removed=len(findings) - len(verified),
            instructions_rewritten=rewritten,
        ),
    )
