import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tcgscan.api import (
    health_router,
    imports_router,
    scan_router,
    status_router,
    tasks_router,
)
from tcgscan.config import settings
from tcgscan.db.database import init_db
from tcgscan.jobs.import_worker import build_worker
from tcgscan.models.failure import KnownError, create_unknown_failure, finalize_response
from tcgscan.services.task_queue import get_task_queue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    worker = build_worker() if settings.worker_enabled else None
    app.state.worker = worker
    if worker is not None:
        await worker.start()
    try:
        yield
    finally:
        if worker is not None:
            await worker.stop()
        await get_task_queue().shutdown()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("tcgscan"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    response = finalize_response(exc.to_response())
    return JSONResponse(status_code=exc.status_code, content=response.model_dump(mode="json"))


@app.exception_handler(Exception)
async def unknown_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("UNHANDLED_ERROR", extra={"error_type": type(exc).__name__})
    response = create_unknown_failure(exc)
    return JSONResponse(status_code=500, content=response.model_dump(mode="json"))


app.include_router(health_router)
app.include_router(imports_router)
app.include_router(scan_router)
app.include_router(status_router)
app.include_router(tasks_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
