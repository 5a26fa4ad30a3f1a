from fastapi import APIRouter, Request

from server.models.responses import HealthResponse

health_router = APIRouter()


@health_router.get("/health", tags=["Health"])
async def handle_health(request: Request) -> HealthResponse:
    """Liveness probe. Does not require an API key."""
    return HealthResponse(status="ok", version=request.app.version)
