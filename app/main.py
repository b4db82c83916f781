import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi import _rate_limit_exceeded_handler
import sentry_sdk

from app.ai.errors import AIEngineError
from app.api.v1.health import router as health_router
from app.api.v1.ai import router as ai_router
from app.api.v1.analytics import router as analytics_router
from app.core.rate_limit import limiter
from app.core.config import settings
from app.core.lifespan import lifespan

logging.basicConfig(level=settings.log_level, format="%(message)s")
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn)

logger = logging.getLogger(__name__)

app = FastAPI(title="Resume AI Engine API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_origin_regex=settings.cors_allow_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(AIEngineError)
async def ai_engine_error_handler(request: Request, exc: AIEngineError):
    logger.info("ai_engine_error path=%s code=%s status=%s", request.url.path, exc.code, exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": str(exc)})


app.include_router(health_router, prefix="/v1", tags=["Health"])
app.include_router(ai_router, prefix="/v1", tags=["AI"])
app.include_router(analytics_router, prefix="/v1", tags=["Analytics"])
