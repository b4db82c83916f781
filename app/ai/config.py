"""Read-only AI configuration: task models, subscription plans, multi-model review.

Values come from a YAML document (``config/ai.yaml`` by default, or
``AI_CONFIG_PATH``) layered over the built-in defaults below. The parsed store
is cached process-wide; ``clear_ai_config_cache`` forces a reload, which only
affects requests that resolve configuration afterwards.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml

from app.ai.errors import ConfigurationError
from app.ai.types import (
    GenerationParams,
    ModelReference,
    MultiModelConfig,
    PlanConfig,
    Provider,
    ReviewModelConfig,
    TaskConfig,
    TaskType,
)
from app.core.config import settings

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "ai.yaml"
_STORE_CACHE: "AIConfigStore | None" = None

MODEL_CATALOG: dict[Provider, tuple[str, ...]] = {
    Provider.ANTHROPIC: (
        "claude-sonnet-4-20250514",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
    ),
    Provider.OPENAI: ("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "o1-preview"),
    Provider.GOOGLE: ("gemini-1.5-pro", "gemini-1.5-flash"),
}

DEFAULT_TASK_CONFIGS: dict[TaskType, dict[str, Any]] = {
    TaskType.RESUME_PARSING: {"provider": "anthropic", "model_id": "claude-sonnet-4-20250514", "temperature": 0.1, "max_tokens": 4000},
    TaskType.RESUME_GENERATION: {"provider": "anthropic", "model_id": "claude-sonnet-4-20250514", "temperature": 0.3, "max_tokens": 4000},
    TaskType.TEXT_IMPROVEMENT: {"provider": "anthropic", "model_id": "claude-3-5-haiku-20241022", "temperature": 0.7, "max_tokens": 2000},
    TaskType.RESUME_REVIEW: {"provider": "anthropic", "model_id": "claude-sonnet-4-20250514", "temperature": 0.2, "max_tokens": 6000},
    TaskType.STYLE_FORMATTING: {"provider": "anthropic", "model_id": "claude-sonnet-4-20250514", "temperature": 0.8, "max_tokens": 3000},
    TaskType.TRANSLATION: {"provider": "anthropic", "model_id": "claude-3-5-haiku-20241022", "temperature": 0.3, "max_tokens": 4000},
}

_QUALITY_CHAIN = [
    {"provider": "openai", "model_id": "gpt-4o"},
    {"provider": "google", "model_id": "gemini-1.5-pro"},
]
_FAST_CHAIN = [
    {"provider": "openai", "model_id": "gpt-4o-mini"},
    {"provider": "google", "model_id": "gemini-1.5-flash"},
]

DEFAULT_FALLBACK_CHAINS: dict[TaskType, list[dict[str, str]]] = {
    TaskType.RESUME_PARSING: _QUALITY_CHAIN,
    TaskType.RESUME_GENERATION: _QUALITY_CHAIN,
    TaskType.TEXT_IMPROVEMENT: _FAST_CHAIN,
    TaskType.RESUME_REVIEW: _QUALITY_CHAIN,
    TaskType.STYLE_FORMATTING: _QUALITY_CHAIN,
    TaskType.TRANSLATION: _FAST_CHAIN,
}

DEFAULT_MULTI_MODEL: dict[str, Any] = {
    "enabled": True,
    "min_models_required": 2,
    "models": [
        {"provider": "anthropic", "model_id": "claude-sonnet-4-20250514", "name": "Claude Sonnet 4"},
        {"provider": "openai", "model_id": "gpt-4o", "name": "GPT-4o"},
    ],
    "synthesis": {"provider": "anthropic", "model_id": "claude-sonnet-4-20250514"},
    "verification_enabled": True,
    "review_params": {"temperature": 0.3, "max_tokens": 6000},
    "synthesis_params": {"temperature": 0.2, "max_tokens": 3000},
    "verification_params": {"temperature": 0.1, "max_tokens": 2000},
}


def parse_task_type(value: str | TaskType) -> TaskType:
    if isinstance(value, TaskType):
        return value
    try:
        return TaskType(str(value).strip().upper())
    except ValueError as exc:
        raise ConfigurationError(f"Unknown AI task type '{value}'") from exc


def parse_model_reference(raw: Any, *, where: str) -> ModelReference:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Invalid model reference at {where}: expected a mapping.")
    provider_raw = str(raw.get("provider") or "").strip().lower()
    model_id = str(raw.get("model_id") or raw.get("modelId") or "").strip()
    try:
        provider = Provider(provider_raw)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown AI provider '{provider_raw}' at {where}") from exc
    if not model_id:
        raise ConfigurationError(f"Missing model_id at {where}")
    return ModelReference(provider=provider, model_id=model_id)


def _params(raw: Any, default: Mapping[str, Any], *, where: str) -> GenerationParams:
    merged = dict(default)
    if isinstance(raw, Mapping):
        merged.update(raw)
    try:
        temperature = float(merged["temperature"])
        max_tokens = int(merged["max_tokens"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid generation parameters at {where}") from exc
    if not 0.0 <= temperature <= 1.0 or max_tokens <= 0:
        raise ConfigurationError(
            f"Invalid generation parameters at {where}: temperature must be in [0, 1] and max_tokens > 0"
        )
    return GenerationParams(temperature=temperature, max_tokens=max_tokens)


class AIConfigStore:
    def __init__(self, raw: Mapping[str, Any] | None = None):
        self._raw: Mapping[str, Any] = raw or {}
        self._catalog = self._build_catalog()

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "AIConfigStore":
        return cls(raw)

    @classmethod
    def from_yaml(cls, path: Path) -> "AIConfigStore":
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Failed to read AI config '{path}': {exc}") from exc
        try:
            parsed = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in AI config '{path}': {exc}") from exc
        if parsed is None:
            parsed = {}
        if not isinstance(parsed, dict):
            raise ConfigurationError(f"Invalid AI config '{path}': expected a top-level mapping.")
        return cls(parsed)

    def _build_catalog(self) -> dict[str, Provider]:
        catalog: dict[str, Provider] = {}
        for provider, model_ids in MODEL_CATALOG.items():
            for model_id in model_ids:
                catalog[model_id] = provider
        extra = self._raw.get("models") or {}
        if isinstance(extra, Mapping):
            for provider_raw, model_ids in extra.items():
                try:
                    provider = Provider(str(provider_raw).strip().lower())
                except ValueError as exc:
                    raise ConfigurationError(f"Unknown AI provider '{provider_raw}' in models catalog") from exc
                for model_id in model_ids or []:
                    catalog[str(model_id)] = provider
        return catalog

    def provider_for_model(self, model_id: str) -> Provider | None:
        return self._catalog.get(model_id)

    def get_task_config(self, task_type: str | TaskType) -> TaskConfig:
        task = parse_task_type(task_type)
        stored = (self._raw.get("tasks") or {}).get(task.value) or {}
        where = f"tasks.{task.value}"
        entry = {**DEFAULT_TASK_CONFIGS[task], **stored}

        primary = parse_model_reference(entry, where=where)
        if "fallbacks" in stored:
            fallbacks_raw = stored.get("fallbacks") or []
        else:
            fallbacks_raw = DEFAULT_FALLBACK_CHAINS.get(task, [])
        fallbacks = tuple(
            parse_model_reference(item, where=f"{where}.fallbacks[{idx}]")
            for idx, item in enumerate(fallbacks_raw)
        )
        params = _params(entry, {}, where=where)
        return TaskConfig(
            task_type=task,
            primary=primary,
            fallbacks=fallbacks,
            temperature=params.temperature,
            max_tokens=params.max_tokens,
            is_enabled=bool(entry.get("enabled", True)),
        )

    def get_plan(self, plan_key: str) -> PlanConfig | None:
        plans = self._raw.get("plans") or {}
        entry = plans.get(plan_key)
        if entry is None:
            return None
        where = f"plans.{plan_key}"

        allowed_raw = entry.get("allowed_models")
        allowed = None if allowed_raw is None else tuple(str(m) for m in allowed_raw)

        overrides: dict[TaskType, ModelReference] = {}
        for task_raw, ref_raw in (entry.get("task_model_overrides") or {}).items():
            task = parse_task_type(task_raw)
            overrides[task] = parse_model_reference(ref_raw, where=f"{where}.task_model_overrides.{task_raw}")

        return PlanConfig(
            key=plan_key,
            allowed_models=allowed,
            task_model_overrides=overrides,
            multi_model_review=bool(entry.get("multi_model_review", False)),
        )

    def get_multi_model_config(self) -> MultiModelConfig:
        stored = self._raw.get("multi_model_review") or {}
        entry = {**DEFAULT_MULTI_MODEL, **stored}
        where = "multi_model_review"

        models = []
        for idx, item in enumerate(entry.get("models") or []):
            reference = parse_model_reference(item, where=f"{where}.models[{idx}]")
            models.append(ReviewModelConfig(reference=reference, display_name=str(item.get("name") or "")))

        try:
            min_required = int(entry.get("min_models_required", 2))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid {where}.min_models_required") from exc

        return MultiModelConfig(
            models=tuple(models),
            synthesis_model=parse_model_reference(entry.get("synthesis"), where=f"{where}.synthesis"),
            is_enabled=bool(entry.get("enabled", True)),
            min_models_required=min_required,
            review_params=_params(
                entry.get("review_params"), DEFAULT_MULTI_MODEL["review_params"], where=f"{where}.review_params"
            ),
            synthesis_params=_params(
                entry.get("synthesis_params"), DEFAULT_MULTI_MODEL["synthesis_params"], where=f"{where}.synthesis_params"
            ),
            verification_params=_params(
                entry.get("verification_params"),
                DEFAULT_MULTI_MODEL["verification_params"],
                where=f"{where}.verification_params",
            ),
            verification_enabled=bool(entry.get("verification_enabled", True)),
        )


def get_ai_config_store() -> AIConfigStore:
    """Load the configured YAML store once and cache it."""
    global _STORE_CACHE

    if _STORE_CACHE is not None:
        return _STORE_CACHE

    path = Path(settings.ai_config_path) if settings.ai_config_path else _DEFAULT_CONFIG_PATH
    _STORE_CACHE = AIConfigStore.from_yaml(path) if path.exists() else AIConfigStore()
    return _STORE_CACHE


def clear_ai_config_cache() -> None:
    global _STORE_CACHE
    _STORE_CACHE = None
