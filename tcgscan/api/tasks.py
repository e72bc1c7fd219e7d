"""
Background task endpoints.

Operators trigger a card catalog refresh or a cache purge and poll the
resulting task by id. Each task kind runs at most once at a time.
"""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgscan.api.dependencies import get_session_factory, get_task_queue
from tcgscan.models.failure import JobNotFoundError
from tcgscan.services.card_catalog import download_card_catalog
from tcgscan.services.task_queue import TaskQueue, TaskRecord
from tcgscan.services.translation_cache import TranslationCacheService

router = APIRouter(prefix="/tasks", tags=["tasks"])

CATALOG_REFRESH_TASK = "catalog-refresh"
CACHE_PURGE_TASK = "cache-purge"


class TaskResponse(BaseModel):
    id: str
    name: str
    status: str
    result: Any = None
    error: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None


def task_to_response(record: TaskRecord) -> TaskResponse:
    return TaskResponse(
        id=record.id,
        name=record.name,
        status=record.status.value,
        result=record.result,
        error=record.error,
        created_at=record.created_at,
        started_at=record.started_at,
        finished_at=record.finished_at,
    )


async def refresh_catalog() -> dict[str, str]:
    path = await download_card_catalog()
    return {"path": str(path)}


async def purge_cache(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, int]:
    async with session_factory() as session:
        deleted = await TranslationCacheService(session).purge_expired()
        await session.commit()
    return {"deleted": deleted}


@router.post(
    "/catalog-refresh", response_model=TaskResponse, status_code=status.HTTP_202_ACCEPTED
)
async def start_catalog_refresh(
    queue: Annotated[TaskQueue, Depends(get_task_queue)],
) -> TaskResponse:
    """Download a fresh card catalog in the background."""
    record = queue.submit(CATALOG_REFRESH_TASK, refresh_catalog)
    return task_to_response(record)


@router.post("/cache-purge", response_model=TaskResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_cache_purge(
    queue: Annotated[TaskQueue, Depends(get_task_queue)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> TaskResponse:
    """Delete expired translation cache entries in the background."""
    record = queue.submit(CACHE_PURGE_TASK, lambda: purge_cache(session_factory))
    return task_to_response(record)


@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    queue: Annotated[TaskQueue, Depends(get_task_queue)],
) -> list[TaskResponse]:
    return [task_to_response(record) for record in queue.list()]


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    queue: Annotated[TaskQueue, Depends(get_task_queue)],
) -> TaskResponse:
    record = queue.get(task_id)
    if record is None:
        raise JobNotFoundError("task", task_id)
    return task_to_response(record)
