from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.ai.types import ModelReference, TaskType

FindingCategory = Literal["text_improvement", "missing_section", "add_content"]
Severity = Literal["critical", "important", "suggestion"]
SectionImportance = Literal["required", "recommended", "optional"]


class ReviewFinding(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: str
    category: FindingCategory
    severity: Severity = "suggestion"
    title: str
    description: str = ""
    target_ref: str | None = None
    current_value: str | None = None
    suggested_value: str | None = None
    quick_applicable: bool = False
    requires_preview: bool = True


class MissingSection(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    section: str
    importance: SectionImportance = "recommended"
    reason: str = ""


class ModelReviewResult(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str
    reference: ModelReference
    findings: list[ReviewFinding] = Field(default_factory=list)
    overall_score: int = Field(default=70, ge=0, le=100)
    strengths: list[str] = Field(default_factory=list)
    missing_sections: list[MissingSection] = Field(default_factory=list)
    industry_detected: str | None = None
    duration_ms: int = Field(default=0, ge=0)


class FailureReport(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str
    reference: ModelReference
    error_message: str


class ReviewStats(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    synthesized: bool = False
    dedup_removed: int = 0
    verification_removed: int = 0
    instructions_rewritten: int = 0


class MultiModelOutcome(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    overall_score: int = Field(ge=0, le=100)
    strengths: list[str] = Field(default_factory=list)
    findings: list[ReviewFinding] = Field(default_factory=list)
    missing_sections: list[MissingSection] = Field(default_factory=list)
    industry_detected: str | None = None
    model_count: int = Field(ge=1)
    per_model_results: list[ModelReviewResult] = Field(default_factory=list)
    failures: list[FailureReport] = Field(default_factory=list)
    stats: ReviewStats = Field(default_factory=ReviewStats)


class ReviewRequest(BaseModel):
    resume_content: str = Field(min_length=1, max_length=100000)
    semantic_map: str | None = Field(default=None, max_length=100000)
    plan_key: str | None = Field(default=None, max_length=64)


class ReviewModelInfo(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    name: str
    provider: str
    model_id: str


class ReviewModelsResponse(BaseModel):
    enabled: bool
    min_models_required: int
    models: list[ReviewModelInfo]
    synthesis_model: str


class GenerateRequest(BaseModel):
    task_type: TaskType
    prompt: str = Field(min_length=1, max_length=100000)
    plan_key: str | None = Field(default=None, max_length=64)


class GenerateResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    text: str
    model_used: str
    fallbacks_attempted: int = Field(ge=0)
