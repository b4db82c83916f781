from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Mapping, Protocol, TypeVar


T = TypeVar("T")


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


class TaskType(str, Enum):
    RESUME_PARSING = "RESUME_PARSING"
    RESUME_GENERATION = "RESUME_GENERATION"
    TEXT_IMPROVEMENT = "TEXT_IMPROVEMENT"
    RESUME_REVIEW = "RESUME_REVIEW"
    STYLE_FORMATTING = "STYLE_FORMATTING"
    TRANSLATION = "TRANSLATION"


@dataclass(frozen=True)
class ModelReference:
    provider: Provider
    model_id: str

    def __str__(self) -> str:
        return f"{self.provider.value}/{self.model_id}"


@dataclass(frozen=True)
class GenerationParams:
    temperature: float = 0.3
    max_tokens: int = 4000


@dataclass(frozen=True)
class TaskConfig:
    task_type: TaskType
    primary: ModelReference
    fallbacks: tuple[ModelReference, ...] = ()
    temperature: float = 0.3
    max_tokens: int = 4000
    is_enabled: bool = True

    @property
    def generation_params(self) -> GenerationParams:
        return GenerationParams(temperature=self.temperature, max_tokens=self.max_tokens)

    def candidates(self) -> list[ModelReference]:
        """Primary followed by fallbacks, with consecutive repeats collapsed."""
        ordered: list[ModelReference] = []
        for model in (self.primary, *self.fallbacks):
            if ordered and ordered[-1] == model:
                continue
            ordered.append(model)
        return ordered


@dataclass(frozen=True)
class PlanConfig:
    key: str
    # None means the plan imposes no allow-list; an empty tuple means no access.
    allowed_models: tuple[str, ...] | None = None
    task_model_overrides: Mapping[TaskType, ModelReference] = field(default_factory=dict)
    multi_model_review: bool = False


@dataclass(frozen=True)
class ReviewModelConfig:
    reference: ModelReference
    display_name: str

    @property
    def name(self) -> str:
        return self.display_name or self.reference.model_id


@dataclass(frozen=True)
class MultiModelConfig:
    models: tuple[ReviewModelConfig, ...]
    synthesis_model: ModelReference
    is_enabled: bool = True
    min_models_required: int = 2
    review_params: GenerationParams = GenerationParams(temperature=0.3, max_tokens=6000)
    synthesis_params: GenerationParams = GenerationParams(temperature=0.2, max_tokens=3000)
    verification_params: GenerationParams = GenerationParams(temperature=0.1, max_tokens=2000)
    verification_enabled: bool = True


@dataclass(frozen=True)
class ExecutionResult(Generic[T]):
    value: T
    model_used: ModelReference
    fallbacks_attempted: int = 0


class TextGenerator(Protocol):
    async def generate(self, model_id: str, prompt: str, params: GenerationParams) -> str: ...


@dataclass(frozen=True)
class ModelHandle:
    """A concrete model bound to its provider client."""

    reference: ModelReference
    client: TextGenerator

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        return await self.client.generate(self.reference.model_id, prompt, params)
