"""
Batch import worker.

Identifies the images of an import job in the background. One job is
processed at a time, system-wide: a pass first takes the "import-worker"
lease in the database and releases it when done, so two processes (or a
restarted one) never work on the same job.

Within a job, pending items go on an asyncio.Queue drained by a fixed
number of worker coroutines. Each item gets its own session and a time
budget; an item that times out or is cancelled is marked failed so the job
can still complete.

Run standalone with `python -m tcgscan.jobs.import_worker`; the API starts
it in-process when WORKER_ENABLED is set.
"""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable
from datetime import timedelta
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgscan.config import settings
from tcgscan.db import operations as ops
from tcgscan.db.database import async_session_factory, init_db
from tcgscan.models.db import ImportItemDB, ImportJobDB, utcnow
from tcgscan.models.failure import KnownError
from tcgscan.models.identification import (
    IdentificationCandidate,
    IdentificationFailedError,
    ScanIdentification,
)
from tcgscan.models.import_job import ErrorCode, JobStatus, categorize_error
from tcgscan.models.scan import Game
from tcgscan.services.identification_service import build_identification_factory
from tcgscan.services.image_storage import ImageStorage

logger = logging.getLogger(__name__)

IMPORT_WORKER_LEASE = "import-worker"


class ScanIdentifier(Protocol):
    """What the worker needs from the identification pipeline."""

    async def identify_scan(
        self,
        image: bytes | None,
        mime_type: str = ...,
        ocr_text: str | None = ...,
        declared_language: str = ...,
        game: Game | None = ...,
    ) -> ScanIdentification: ...


IdentificationFactory = Callable[[AsyncSession], ScanIdentifier]


def describe_error(error: BaseException) -> str:
    """Message stored on a failed item."""
    if isinstance(error, KnownError) and error.detail:
        return f"{error.message} ({error.detail})"
    return str(error) or type(error).__name__


def _partial_guesses(error: IdentificationFailedError) -> list[IdentificationCandidate] | None:
    """Best guess first, then the other candidates the resolver proposed."""
    best = error.result.best_guess
    others = [c for c in error.result.candidates if c is not best]
    guesses = ([best] if best else []) + others
    return guesses or None


class BatchWorker:
    """Polls for the active import job and identifies its items."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage: ImageStorage,
        identification_factory: IdentificationFactory,
        concurrency: int | None = None,
        item_timeout: float | None = None,
        poll_interval: float | None = None,
        cleanup_interval: float | None = None,
        retention: timedelta | None = None,
        job_timeout: timedelta | None = None,
    ):
        self.session_factory = session_factory
        self.storage = storage
        self.identification_factory = identification_factory
        self.concurrency = concurrency or settings.import_concurrency
        self.item_timeout = item_timeout or settings.import_item_timeout_seconds
        self.poll_interval = poll_interval or settings.import_poll_interval_seconds
        self.cleanup_interval = cleanup_interval or settings.import_cleanup_interval_seconds
        self.retention = retention or timedelta(hours=settings.import_retention_hours)
        self.job_timeout = job_timeout or timedelta(hours=settings.import_job_timeout_hours)

        self.owner_id = str(uuid.uuid4())
        self.lease_ttl = timedelta(seconds=self.item_timeout * 2)

        self._stop = asyncio.Event()
        self._loops: list[asyncio.Task[None]] = []

        # Items currently between claim and result, for observability
        self.in_flight = 0
        self.peak_in_flight = 0

    # =========================================================================
    # JOB SUBMISSION
    # =========================================================================

    async def create_job(self, total_items: int) -> ImportJobDB:
        """
        Raises:
            JobConflictError: If another job is pending or processing
        """
        async with self.session_factory() as session:
            job = await ops.create_job(session, total_items)
            await session.commit()
        logger.info("JOB_CREATED", extra={"job_id": job.id, "total_items": total_items})
        return job

    async def add_item(
        self,
        job_id: str,
        image_path: str,
        original_filename: str,
        ocr_text: str | None = None,
        declared_language: str = "",
    ) -> ImportItemDB:
        """
        Raises:
            JobNotFoundError: If the job does not exist
        """
        async with self.session_factory() as session:
            item = await ops.add_item(
                session, job_id, image_path, original_filename, ocr_text, declared_language
            )
            await session.commit()
        return item

    async def delete_job(self, job_id: str) -> None:
        """
        Delete a job, its items, and their stored images.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        async with self.session_factory() as session:
            image_paths = await ops.delete_job(session, job_id)
            await session.commit()
        self._delete_images(image_paths)
        logger.info("JOB_DELETED", extra={"job_id": job_id, "images": len(image_paths)})

    # =========================================================================
    # PROCESSING
    # =========================================================================

    async def process_pending(self) -> None:
        """
        Run one processing pass over the active job, if any.

        Does nothing when another worker holds the lease.
        """
        async with self.session_factory() as session:
            acquired = await ops.acquire_lease(
                session, IMPORT_WORKER_LEASE, self.owner_id, self.lease_ttl
            )
        if not acquired:
            logger.debug("IMPORT_LEASE_BUSY", extra={"owner_id": self.owner_id})
            return

        heartbeat = asyncio.create_task(self._renew_lease())
        try:
            await self._recover_stale_items()

            async with self.session_factory() as session:
                job = await ops.get_active_job(session)
                if job is None:
                    return
                job_id = job.id
                if job.status == JobStatus.PENDING.value:
                    job.status = JobStatus.PROCESSING.value
                    job.updated_at = utcnow()
                item_ids = await ops.get_pending_item_ids(session, job_id)
                await session.commit()

            if item_ids:
                logger.info("JOB_PROCESSING", extra={"job_id": job_id, "items": len(item_ids)})
                await self._dispatch(job_id, item_ids)

            async with self.session_factory() as session:
                completed = await ops.complete_job_if_done(session, job_id)
                await session.commit()
            if completed:
                logger.info("JOB_COMPLETED", extra={"job_id": job_id})
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat
            async with self.session_factory() as session:
                await ops.release_lease(session, IMPORT_WORKER_LEASE, self.owner_id)

    async def _renew_lease(self) -> None:
        interval = self.lease_ttl.total_seconds() / 3
        while True:
            await asyncio.sleep(interval)
            async with self.session_factory() as session:
                renewed = await ops.acquire_lease(
                    session, IMPORT_WORKER_LEASE, self.owner_id, self.lease_ttl
                )
            if not renewed:
                logger.warning("IMPORT_LEASE_LOST", extra={"owner_id": self.owner_id})

    async def _recover_stale_items(self) -> None:
        """Fail items a dead worker left in processing."""
        cutoff = utcnow() - timedelta(seconds=self.item_timeout)
        async with self.session_factory() as session:
            recovered = await ops.fail_stale_processing_items(session, cutoff)
            await session.commit()
        if recovered:
            logger.warning("STALE_ITEMS_FAILED", extra={"items": recovered})

    async def _dispatch(self, job_id: str, item_ids: list[int]) -> None:
        """Drain the item ids through at most `concurrency` workers."""
        queue: asyncio.Queue[int] = asyncio.Queue()
        for item_id in item_ids:
            queue.put_nowait(item_id)

        workers = [
            asyncio.create_task(self._drain(job_id, queue))
            for _ in range(min(self.concurrency, len(item_ids)))
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def _drain(self, job_id: str, queue: asyncio.Queue[int]) -> None:
        while not self._stop.is_set():
            try:
                item_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self._process_item(job_id, item_id)
            finally:
                queue.task_done()

    async def _process_item(self, job_id: str, item_id: int) -> None:
        async with self.session_factory() as session:
            item = await ops.claim_item(session, item_id)
            await session.commit()
            if item is None:
                return

            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                await self._identify_item(session, job_id, item)
            finally:
                self.in_flight -= 1

    async def _identify_item(self, session: AsyncSession, job_id: str, item: ImportItemDB) -> None:
        item_id = item.id
        try:
            image = self.storage.read(item.image_path)
        except (OSError, ValueError) as e:
            await self._record_failure(
                job_id, item_id, ErrorCode.FILE_ERROR, f"Failed to read image file: {e}"
            )
            return

        try:
            async with asyncio.timeout(self.item_timeout):
                service = self.identification_factory(session)
                identification = await service.identify_scan(
                    image,
                    self.storage.mime_type_for(item.image_path),
                    item.ocr_text,
                    item.declared_language,
                )
                await ops.record_identification(session, item, identification)
                await ops.increment_processed(session, job_id)
                await session.commit()
        except TimeoutError:
            await session.rollback()
            await self._record_failure(
                job_id,
                item_id,
                ErrorCode.TIMEOUT,
                f"Identification timed out after {self.item_timeout:g}s",
            )
            return
        except asyncio.CancelledError:
            await session.rollback()
            await self._record_failure(
                job_id, item_id, ErrorCode.TIMEOUT, "Identification was cancelled"
            )
            raise
        except Exception as e:
            await session.rollback()
            message = describe_error(e)
            if not isinstance(e, KnownError):
                logger.exception("ITEM_IDENTIFICATION_ERROR", extra={"item_id": item_id})
            guesses = _partial_guesses(e) if isinstance(e, IdentificationFailedError) else None
            await self._record_failure(
                job_id, item_id, categorize_error(message), message, guesses
            )
            return

        logger.info(
            "ITEM_IDENTIFIED",
            extra={
                "item_id": item_id,
                "card_id": identification.card_id,
                "confidence": identification.confidence,
            },
        )

    async def _record_failure(
        self,
        job_id: str,
        item_id: int,
        error_code: ErrorCode,
        message: str,
        guesses: list[IdentificationCandidate] | None = None,
    ) -> None:
        """Mark an item failed in a fresh session, so a broken one cannot block it."""
        logger.warning(
            "ITEM_FAILED",
            extra={"item_id": item_id, "error_code": error_code.value, "error": message},
        )
        async with self.session_factory() as session:
            item = await session.get(ImportItemDB, item_id)
            if item is None:
                return
            await ops.mark_item_failed(session, item, error_code, message, guesses)
            await ops.increment_processed(session, job_id)
            await session.commit()

    # =========================================================================
    # RETENTION
    # =========================================================================

    async def cleanup_expired(self) -> int:
        """
        Fail jobs stuck past the job timeout, then delete jobs past retention.

        Returns the number of jobs deleted.
        """
        now = utcnow()
        image_paths: list[str] = []
        async with self.session_factory() as session:
            failed = await ops.fail_stuck_jobs(session, now - self.job_timeout)
            expired = await ops.get_jobs_created_before(session, now - self.retention)
            for job in expired:
                image_paths.extend(await ops.delete_job(session, job.id))
            await session.commit()

        if failed:
            logger.warning("STUCK_JOBS_FAILED", extra={"jobs": failed})
        self._delete_images(image_paths)
        if expired:
            logger.info("EXPIRED_JOBS_DELETED", extra={"jobs": len(expired)})
        return len(expired)

    def _delete_images(self, image_paths: list[str]) -> None:
        for path in image_paths:
            try:
                self.storage.delete(path)
            except (OSError, ValueError) as e:
                logger.warning("IMAGE_DELETE_FAILED", extra={"image_path": path, "error": str(e)})

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return bool(self._loops)

    async def start(self) -> None:
        """Start the poll and cleanup loops."""
        if self._loops:
            return
        self._stop.clear()
        self._loops = [
            asyncio.create_task(self._poll_loop()),
            asyncio.create_task(self._cleanup_loop()),
        ]
        logger.info(
            "IMPORT_WORKER_STARTED",
            extra={"owner_id": self.owner_id, "concurrency": self.concurrency},
        )

    async def stop(self) -> None:
        """Signal both loops to stop and wait for them to finish."""
        self._stop.set()
        if self._loops:
            await asyncio.gather(*self._loops, return_exceptions=True)
            self._loops = []
            logger.info("IMPORT_WORKER_STOPPED", extra={"owner_id": self.owner_id})

    async def _wait_or_stop(self, seconds: float) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)

    async def _poll_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self.process_pending()
            except Exception:
                logger.exception("IMPORT_POLL_FAILED")
            await self._wait_or_stop(self.poll_interval)

    async def _cleanup_loop(self) -> None:
        while not self._stop.is_set():
            await self._wait_or_stop(self.cleanup_interval)
            if self._stop.is_set():
                return
            try:
                await self.cleanup_expired()
            except Exception:
                logger.exception("IMPORT_CLEANUP_FAILED")


def build_worker() -> BatchWorker:
    """Worker wired to the configured database, image directory and services."""
    return BatchWorker(
        session_factory=async_session_factory,
        storage=ImageStorage.from_settings(),
        identification_factory=build_identification_factory(),
    )


async def run_worker() -> None:
    """Run the worker until interrupted."""
    await init_db()
    worker = build_worker()
    await worker.start()
    try:
        await asyncio.Event().wait()
    finally:
        await worker.stop()


def main() -> None:
    """CLI entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run_worker())


if __name__ == "__main__":
    main()
