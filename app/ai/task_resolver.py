from __future__ import annotations

import logging
from dataclasses import replace

from app.ai.config import AIConfigStore, parse_task_type
from app.ai.errors import PlanAccessError, TaskDisabledError
from app.ai.types import ModelReference, TaskConfig, TaskType

logger = logging.getLogger(__name__)


def resolve_task_config(
    task_type: str | TaskType,
    plan_key: str | None = None,
    *,
    store: AIConfigStore,
) -> TaskConfig:
    """Resolve the candidate chain and generation parameters for a task.

    A plan override replaces only the primary model. When the plan restricts
    models and the primary is not allowed, the plan's first allowed model
    becomes the primary; fallbacks and parameters always come from the base
    task configuration.
    """
    task = parse_task_type(task_type)
    config = store.get_task_config(task)
    if not config.is_enabled:
        raise TaskDisabledError(task.value)

    if not plan_key:
        return config

    plan = store.get_plan(plan_key)
    if plan is None:
        raise PlanAccessError(f"Unknown subscription plan '{plan_key}'")

    override = plan.task_model_overrides.get(task)
    if override is not None:
        config = replace(config, primary=override)

    if plan.allowed_models is None:
        return config
    if not plan.allowed_models:
        raise PlanAccessError(f"Plan '{plan_key}' has no AI models available")

    if config.primary.model_id not in plan.allowed_models:
        substitute_id = plan.allowed_models[0]
        provider = store.provider_for_model(substitute_id) or config.primary.provider
        substitute = ModelReference(provider=provider, model_id=substitute_id)
        logger.info(
            "ai_plan_model_substituted task=%s plan=%s requested=%s substitute=%s",
            task.value,
            plan_key,
            config.primary,
            substitute,
        )
        config = replace(config, primary=substitute)

    return config
