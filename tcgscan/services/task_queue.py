"""
In-process task queue for operator-triggered background work.

Catalog refreshes and cache purges run as named tasks whose outcome can be
polled by id. A task name has at most one queued or running task; submitting
it again returns the task already in flight.
"""

import asyncio
import logging
import uuid
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from tcgscan.models.db import utcnow

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 100


class TaskStatus(str, Enum):
    """Lifecycle of a queued task."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_TASK_STATUSES = frozenset({TaskStatus.SUCCEEDED, TaskStatus.FAILED})


@dataclass
class TaskRecord:
    """Observable state of one task run."""

    id: str
    name: str
    status: TaskStatus = TaskStatus.QUEUED
    result: Any = None
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_done(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES


class TaskQueue:
    """Runs submitted coroutines as asyncio tasks and remembers their outcome."""

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE):
        self.history_size = history_size
        self._records: OrderedDict[str, TaskRecord] = OrderedDict()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._active_by_name: dict[str, str] = {}

    def submit(self, name: str, factory: Callable[[], Awaitable[Any]]) -> TaskRecord:
        """
        Start a named task, or return the one already queued or running.

        Args:
            name: Task kind, e.g. "catalog-refresh"
            factory: Called once to create the awaitable to run
        """
        active_id = self._active_by_name.get(name)
        if active_id is not None:
            logger.info("TASK_ALREADY_ACTIVE", extra={"task": name, "task_id": active_id})
            return self._records[active_id]

        record = TaskRecord(id=str(uuid.uuid4()), name=name)
        self._records[record.id] = record
        self._active_by_name[name] = record.id
        self._tasks[record.id] = asyncio.create_task(self._run(record, factory))
        self._trim_history()
        logger.info("TASK_QUEUED", extra={"task": name, "task_id": record.id})
        return record

    async def _run(self, record: TaskRecord, factory: Callable[[], Awaitable[Any]]) -> None:
        record.status = TaskStatus.RUNNING
        record.started_at = utcnow()
        try:
            record.result = await factory()
            record.status = TaskStatus.SUCCEEDED
            logger.info("TASK_SUCCEEDED", extra={"task": record.name, "task_id": record.id})
        except asyncio.CancelledError:
            record.status = TaskStatus.FAILED
            record.error = "cancelled"
            raise
        except Exception as e:
            record.status = TaskStatus.FAILED
            record.error = f"{type(e).__name__}: {e}"
            logger.exception("TASK_FAILED", extra={"task": record.name, "task_id": record.id})
        finally:
            record.finished_at = utcnow()
            self._tasks.pop(record.id, None)
            if self._active_by_name.get(record.name) == record.id:
                del self._active_by_name[record.name]

    def _trim_history(self) -> None:
        """Drop the oldest finished records beyond the history size."""
        excess = len(self._records) - self.history_size
        if excess <= 0:
            return
        for task_id in [tid for tid, rec in self._records.items() if rec.is_done][:excess]:
            del self._records[task_id]

    def get(self, task_id: str) -> TaskRecord | None:
        return self._records.get(task_id)

    def list(self) -> list[TaskRecord]:
        """Records newest first."""
        return list(reversed(self._records.values()))

    async def wait(self, task_id: str) -> TaskRecord | None:
        """Wait for a task to finish. Returns its record, or None if unknown."""
        task = self._tasks.get(task_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._records.get(task_id)

    async def shutdown(self) -> None:
        """Cancel unfinished tasks and wait for them to stop."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("TASK_QUEUE_STOPPED", extra={"cancelled": len(tasks)})


_task_queue: TaskQueue | None = None


def get_task_queue() -> TaskQueue:
    """Get the global task queue instance."""
    global _task_queue
    if _task_queue is None:
        _task_queue = TaskQueue()
    return _task_queue


def reset_task_queue() -> None:
    """Reset the global task queue (for testing)."""
    global _task_queue
    _task_queue = None
