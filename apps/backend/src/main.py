import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from core.observability import configure_observability


# Must run before FastAPI is imported so auto-instrumentation can patch it
configure_observability()

from fastapi import FastAPI  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html  # noqa: E402

from api.v1.api import api_router  # noqa: E402
from core.config import get_settings  # noqa: E402
from core.error_handler import (  # noqa: E402
    ExceptionNormalizationMiddleware,
    global_exception_handler,
    setup_logging,
)
from core.exceptions import DomainError  # noqa: E402
from core.middleware import CorrelationIdMiddleware  # noqa: E402
from core.scheduler import scheduler_lifespan  # noqa: E402
from dependencies.db import AsyncSessionLocal  # noqa: E402
from services.analysis.checkpoints import CheckpointStore  # noqa: E402
from services.analysis.client import ProviderClient  # noqa: E402
from services.analysis.config_source import ModelConfigSource  # noqa: E402
from services.analysis.exceptions import AnalysisStreamError  # noqa: E402
from services.analysis.streamer import ActiveStreams  # noqa: E402


setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the long-lived analysis services and run background jobs."""
    settings = get_settings()
    checkpoint_store = CheckpointStore(AsyncSessionLocal, settings)
    config_source = ModelConfigSource(AsyncSessionLocal, settings)
    app.state.checkpoint_store = checkpoint_store
    app.state.provider_client = ProviderClient(config_source, settings)
    logger.info(
        "Analysis engine ready (default provider: %s)", settings.LLM_PROVIDER
    )

    async with scheduler_lifespan(checkpoint_store, settings):
        yield


settings = get_settings()

app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Streaming document analysis with checkpointed recovery",
    version="0.1.0",
    docs_url=None,  # We'll mount docs under /api/v1/docs
    redoc_url=None,
    lifespan=lifespan,
)

app.state.active_streams = ActiveStreams()

app.add_exception_handler(DomainError, global_exception_handler)
app.add_exception_handler(AnalysisStreamError, global_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, global_exception_handler)  # type: ignore[arg-type]

# Outermost last: correlation id must be set before errors are normalized
app.add_middleware(ExceptionNormalizationMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


# Mount OpenAPI docs under /api/v1/docs and /api/v1/redoc
@app.get("/api/v1/docs", include_in_schema=False)
def custom_swagger_ui_html():
    return get_swagger_ui_html(
        openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Docs"
    )


@app.get("/api/v1/redoc", include_in_schema=False)
def redoc_html():
    return get_redoc_html(
        openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Redoc"
    )


@app.get("/")
def read_root() -> dict[str, str]:
    return {"message": f"{settings.APP_NAME} API"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
