from fastapi import APIRouter

from .analysis import router as analysis_router
from .health import router as health_router


# Public API router (health)
api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])

# Analysis routes authenticate per endpoint: every handler resolves the
# owner from the bearer token, which also scopes checkpoint access.
api_router.include_router(analysis_router)
