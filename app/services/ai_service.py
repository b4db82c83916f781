from __future__ import annotations

import logging
import time
import uuid

from app.ai.config import AIConfigStore
from app.ai.errors import AIEngineError, PlanAccessError, ProviderCallError
from app.ai.fallback import generate_text_for_task
from app.ai.registry import ProviderRegistry
from app.ai.retry import RetryPolicy
from app.analytics.db import log_ai_run
from app.schemas.review import (
    GenerateRequest,
    GenerateResponse,
    MultiModelOutcome,
    ReviewModelInfo,
    ReviewModelsResponse,
    ReviewRequest,
)
from app.services.multi_model_review import run_multi_model_review

logger = logging.getLogger(__name__)


def _log_ai_run(**fields) -> None:
    try:
        log_ai_run(**fields)
    except Exception:  # pragma: no cover - analytics must not break AI responses
        logger.debug("ai_run_logging_failed", exc_info=True)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _error_code(exc: Exception) -> str:
    return exc.code if isinstance(exc, AIEngineError) else "provider_error"


def _as_engine_error(exc: Exception) -> AIEngineError:
    if isinstance(exc, AIEngineError):
        return exc
    error = ProviderCallError(f"AI provider call failed: {exc}")
    error.__cause__ = exc
    return error


async def generate_text(
    payload: GenerateRequest,
    *,
    store: AIConfigStore,
    registry: ProviderRegistry,
    retry_policy: RetryPolicy | None = None,
) -> GenerateResponse:
    run_id = uuid.uuid4().hex
    started = time.perf_counter()
    try:
        result = await generate_text_for_task(
            payload.task_type,
            payload.prompt,
            plan_key=payload.plan_key,
            store=store,
            registry=registry,
            retry_policy=retry_policy,
        )
    except Exception as exc:
        logger.warning("ai_generate_failed task=%s plan=%s: %s", payload.task_type.value, payload.plan_key, exc)
        _log_ai_run(
            run_id=run_id,
            kind="generate",
            task_type=payload.task_type.value,
            status="error",
            error_code=_error_code(exc),
            latency_ms=_elapsed_ms(started),
        )
        raise _as_engine_error(exc) from exc

    _log_ai_run(
        run_id=run_id,
        kind="generate",
        task_type=payload.task_type.value,
        model=str(result.model_used),
        fallbacks_attempted=result.fallbacks_attempted,
        model_count=1,
        status="success",
        latency_ms=_elapsed_ms(started),
    )
    return GenerateResponse(
        text=result.value,
        model_used=str(result.model_used),
        fallbacks_attempted=result.fallbacks_attempted,
    )


def ensure_multi_model_access(plan_key: str | None, *, store: AIConfigStore) -> None:
    """Plans must opt in to multi-model review; requests without a plan are internal."""
    if not plan_key:
        return
    plan = store.get_plan(plan_key)
    if plan is None:
        raise PlanAccessError(f"Unknown subscription plan '{plan_key}'")
    if not plan.multi_model_review:
        raise PlanAccessError(f"Multi-model review is not available on the {plan_key} plan")


async def review_resume(
    payload: ReviewRequest,
    *,
    store: AIConfigStore,
    registry: ProviderRegistry,
    retry_policy: RetryPolicy | None = None,
) -> MultiModelOutcome:
    run_id = uuid.uuid4().hex
    started = time.perf_counter()
    try:
        ensure_multi_model_access(payload.plan_key, store=store)
        config = store.get_multi_model_config()
        outcome = await run_multi_model_review(payload, config, registry=registry, retry_policy=retry_policy)
    except Exception as exc:
        logger.warning("ai_review_failed plan=%s: %s", payload.plan_key, exc)
        _log_ai_run(
            run_id=run_id,
            kind="multi_model_review",
            task_type="RESUME_REVIEW",
            failure_count=len(getattr(exc, "failures", []) or []),
            status="error",
            error_code=_error_code(exc),
            latency_ms=_elapsed_ms(started),
        )
        raise _as_engine_error(exc) from exc

    _log_ai_run(
        run_id=run_id,
        kind="multi_model_review",
        task_type="RESUME_REVIEW",
        model=str(config.synthesis_model) if outcome.stats.synthesized else None,
        model_count=outcome.model_count,
        failure_count=len(outcome.failures),
        status="success" if not outcome.failures else "partial",
        latency_ms=_elapsed_ms(started),
    )
    return outcome


def list_review_models(*, store: AIConfigStore) -> ReviewModelsResponse:
    config = store.get_multi_model_config()
    return ReviewModelsResponse(
        enabled=config.is_enabled,
        min_models_required=config.min_models_required,
        models=[
            ReviewModelInfo(
                name=model.name,
                provider=model.reference.provider.value,
                model_id=model.reference.model_id,
            )
            for model in config.models
        ],
        synthesis_model=str(config.synthesis_model),
    )
