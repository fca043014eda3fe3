"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from designkit.api import router as api_router
from designkit.api.sessions import get_registry
from designkit.core.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Pending debounced writes must reach the cache before the process exits
    if get_registry.cache_info().currsize:
        get_registry().close_all()
        logger.info("Flushed open sessions on shutdown")


app = FastAPI(
    title="DesignKit Project Engine",
    description="Project state engine for the AI project design wizard",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    return JSONResponse(content={"status": "ok"}, status_code=200)


app.include_router(api_router, prefix="/v1", tags=["v1"])
