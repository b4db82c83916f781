from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health", summary="Health Check", description="Check the health status of the application.")
async def health_check(request: Request):
    registry = getattr(request.app.state, "ai_registry", None)
    return {"status": "healthy", "ai_registry": registry is not None}
