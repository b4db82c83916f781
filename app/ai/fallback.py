from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from app.ai.classifier import classify_error
from app.ai.config import AIConfigStore
from app.ai.registry import ProviderRegistry
from app.ai.retry import RetryPolicy, retry_async
from app.ai.task_resolver import resolve_task_config
from app.ai.types import ExecutionResult, GenerationParams, ModelHandle, TaskConfig, TaskType

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[ModelHandle, GenerationParams], Awaitable[T]]


async def execute_with_fallback(
    task_config: TaskConfig,
    operation: Operation[T],
    *,
    registry: ProviderRegistry,
    retry_policy: RetryPolicy | None = None,
) -> ExecutionResult[T]:
    """Try each candidate in configured order until one succeeds.

    Retries happen within a candidate, fallback happens across candidates.
    Errors that are not fallback-worthy, and the last candidate's error,
    propagate unchanged.
    """
    candidates = task_config.candidates()
    params = task_config.generation_params
    last_index = len(candidates) - 1

    for index, model in enumerate(candidates):
        try:
            handle = registry.model(model)
            value = await retry_async(
                lambda: operation(handle, params),
                retry_policy,
                operation_name=f"{task_config.task_type.value}:{model}",
            )
        except Exception as exc:
            if index == last_index or not classify_error(exc).is_fallback_worthy:
                raise
            logger.warning(
                "ai_fallback_next_candidate task=%s failed_model=%s next_model=%s error=%s",
                task_config.task_type.value,
                model,
                candidates[index + 1],
                exc,
            )
            continue

        if index > 0:
            logger.info(
                "ai_fallback_used task=%s model=%s fallbacks_attempted=%s",
                task_config.task_type.value,
                model,
                index,
            )
        return ExecutionResult(value=value, model_used=model, fallbacks_attempted=index)

    raise RuntimeError("Task configuration produced no candidate models")


async def resolve_and_execute(
    task_type: str | TaskType,
    operation: Operation[T],
    *,
    plan_key: str | None = None,
    store: AIConfigStore,
    registry: ProviderRegistry,
    retry_policy: RetryPolicy | None = None,
) -> ExecutionResult[T]:
    config = resolve_task_config(task_type, plan_key, store=store)
    return await execute_with_fallback(config, operation, registry=registry, retry_policy=retry_policy)


async def generate_text_for_task(
    task_type: str | TaskType,
    prompt: str,
    *,
    plan_key: str | None = None,
    store: AIConfigStore,
    registry: ProviderRegistry,
    retry_policy: RetryPolicy | None = None,
) -> ExecutionResult[str]:
    async def _generate(handle: ModelHandle, params: GenerationParams) -> str:
        return await handle.generate(prompt, params)

    return await resolve_and_execute(
        task_type,
        _generate,
        plan_key=plan_key,
        store=store,
        registry=registry,
        retry_policy=retry_policy,
    )
