from fastapi import APIRouter, Depends, Request

from app.ai.config import AIConfigStore, get_ai_config_store
from app.ai.registry import ProviderRegistry
from app.ai.retry import RetryPolicy
from app.core.config import settings
from app.core.rate_limit import rate_limit
from app.core.security import require_api_key
from app.schemas.review import (
    GenerateRequest,
    GenerateResponse,
    MultiModelOutcome,
    ReviewModelsResponse,
    ReviewRequest,
)
from app.services.ai_service import generate_text, list_review_models, review_resume

router = APIRouter()


def get_registry(request: Request) -> ProviderRegistry:
    registry = getattr(request.app.state, "ai_registry", None)
    if registry is None:
        registry = ProviderRegistry()
        request.app.state.ai_registry = registry
    return registry


def get_config_store() -> AIConfigStore:
    return get_ai_config_store()


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy.from_settings()


@router.post("/ai/generate", response_model=GenerateResponse)
@rate_limit()
async def ai_generate(
    request: Request,
    payload: GenerateRequest,
    _: None = Depends(require_api_key),
    store: AIConfigStore = Depends(get_config_store),
    registry: ProviderRegistry = Depends(get_registry),
    retry_policy: RetryPolicy = Depends(get_retry_policy),
):
    return await generate_text(payload, store=store, registry=registry, retry_policy=retry_policy)


@router.post("/ai/review-multi-model", response_model=MultiModelOutcome)
@rate_limit(settings.review_rate_limit)
async def ai_review_multi_model(
    request: Request,
    payload: ReviewRequest,
    _: None = Depends(require_api_key),
    store: AIConfigStore = Depends(get_config_store),
    registry: ProviderRegistry = Depends(get_registry),
    retry_policy: RetryPolicy = Depends(get_retry_policy),
):
    return await review_resume(payload, store=store, registry=registry, retry_policy=retry_policy)


@router.get("/ai/multi-model-models", response_model=ReviewModelsResponse)
def ai_review_models(
    _: None = Depends(require_api_key),
    store: AIConfigStore = Depends(get_config_store),
):
    return list_review_models(store=store)
