"""
Database CRUD operations.

Provides async functions for import jobs, import items and worker leases.
Functions flush but never commit; the caller owns the transaction.
"""

import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tcgscan.models.db import ImportItemDB, ImportJobDB, WorkerLeaseDB, utcnow
from tcgscan.models.failure import JobConflictError, JobNotFoundError
from tcgscan.models.identification import IdentificationCandidate, ScanIdentification
from tcgscan.models.import_job import (
    ACTIVE_JOB_STATUSES,
    ErrorCode,
    ItemStatus,
    JobStatus,
    PrintingType,
    check_transition,
)

ACTIVE_SLOT = 1

# --- Job Operations ---


async def get_job(session: AsyncSession, job_id: str) -> ImportJobDB | None:
    """Get a job with its items, or None if it does not exist."""
    result = await session.execute(
        select(ImportJobDB)
        .where(ImportJobDB.id == job_id)
        .options(selectinload(ImportJobDB.items))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_job_or_raise(session: AsyncSession, job_id: str) -> ImportJobDB:
    """Get a job or raise JobNotFoundError."""
    job = await get_job(session, job_id)
    if job is None:
        raise JobNotFoundError("job", job_id)
    return job


async def get_active_job(session: AsyncSession) -> ImportJobDB | None:
    """Get the job currently pending or processing, if any."""
    result = await session.execute(
        select(ImportJobDB)
        .where(ImportJobDB.status.in_([s.value for s in ACTIVE_JOB_STATUSES]))
        .options(selectinload(ImportJobDB.items))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_current_job(session: AsyncSession) -> ImportJobDB | None:
    """
    Get the job the user should see.

    The active job if one exists, otherwise the most recently created job.
    """
    active = await get_active_job(session)
    if active is not None:
        return active

    result = await session.execute(
        select(ImportJobDB)
        .order_by(ImportJobDB.created_at.desc())
        .limit(1)
        .options(selectinload(ImportJobDB.items))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_job(session: AsyncSession, total_items: int) -> ImportJobDB:
    """
    Create a pending import job.

    Only one job may be pending or processing. The unique active slot makes
    two concurrent submissions race at the database, not in Python.

    Raises:
        JobConflictError: If another job is active
    """
    active = await get_active_job(session)
    if active is not None:
        raise JobConflictError(active.id)

    job = ImportJobDB(
        id=str(uuid.uuid4()),
        status=JobStatus.PENDING.value,
        total_items=total_items,
        processed_items=0,
        active_slot=ACTIVE_SLOT,
    )
    session.add(job)
    try:
        await session.flush()
    except IntegrityError as e:
        await session.rollback()
        raise JobConflictError() from e
    return job


async def finish_job(session: AsyncSession, job: ImportJobDB, status: JobStatus) -> None:
    """Move a job to a terminal status and release the active slot."""
    job.status = status.value
    job.active_slot = None
    job.updated_at = utcnow()
    await session.flush()


async def increment_processed(session: AsyncSession, job_id: str) -> None:
    """Atomically bump a job's processed counter."""
    await session.execute(
        update(ImportJobDB)
        .where(ImportJobDB.id == job_id)
        .values(processed_items=ImportJobDB.processed_items + 1, updated_at=utcnow())
    )


async def complete_job_if_done(session: AsyncSession, job_id: str) -> bool:
    """
    Mark a job completed once no item is pending or processing.

    Re-queries item statuses so late writes from other workers are seen.

    Returns:
        True if the job was completed by this call.
    """
    result = await session.execute(
        select(func.count())
        .select_from(ImportItemDB)
        .where(
            ImportItemDB.job_id == job_id,
            ImportItemDB.status.in_([ItemStatus.PENDING.value, ItemStatus.PROCESSING.value]),
        )
    )
    remaining = result.scalar_one()
    if remaining > 0:
        return False

    job = await session.get(ImportJobDB, job_id)
    if job is None or job.status not in {s.value for s in ACTIVE_JOB_STATUSES}:
        return False

    await finish_job(session, job, JobStatus.COMPLETED)
    return True


async def delete_job(session: AsyncSession, job_id: str) -> list[str]:
    """
    Delete a job and its items.

    Returns:
        Image paths of the deleted items, for the caller to remove from storage.

    Raises:
        JobNotFoundError: If the job does not exist
    """
    job = await get_job_or_raise(session, job_id)
    image_paths = [item.image_path for item in job.items]
    await session.delete(job)
    await session.flush()
    return image_paths


async def get_jobs_created_before(session: AsyncSession, cutoff: datetime) -> list[ImportJobDB]:
    """Get jobs older than the cutoff, with items loaded."""
    result = await session.execute(
        select(ImportJobDB)
        .where(ImportJobDB.created_at < cutoff)
        .options(selectinload(ImportJobDB.items))
    )
    return list(result.scalars().all())


async def fail_stuck_jobs(session: AsyncSession, started_before: datetime) -> int:
    """
    Fail jobs that have been active since before the cutoff.

    Returns the number of jobs failed.
    """
    result = await session.execute(
        select(ImportJobDB).where(
            ImportJobDB.status.in_([s.value for s in ACTIVE_JOB_STATUSES]),
            ImportJobDB.created_at < started_before,
        )
    )
    jobs = list(result.scalars().all())
    for job in jobs:
        await finish_job(session, job, JobStatus.FAILED)
    return len(jobs)


# --- Item Operations ---


async def add_item(
    session: AsyncSession,
    job_id: str,
    image_path: str,
    original_filename: str,
    ocr_text: str | None = None,
    declared_language: str = "",
) -> ImportItemDB:
    """
    Add a pending item to a job.

    Raises:
        JobNotFoundError: If the job does not exist
    """
    job = await session.get(ImportJobDB, job_id)
    if job is None:
        raise JobNotFoundError("job", job_id)

    item = ImportItemDB(
        job_id=job_id,
        image_path=image_path,
        original_filename=original_filename,
        ocr_text=ocr_text,
        declared_language=declared_language,
        status=ItemStatus.PENDING.value,
    )
    session.add(item)
    await session.flush()
    return item


async def get_item(session: AsyncSession, job_id: str, item_id: int) -> ImportItemDB:
    """
    Get an item that belongs to the given job.

    Raises:
        JobNotFoundError: If the item does not exist in that job
    """
    item = await session.get(ImportItemDB, item_id)
    if item is None or item.job_id != job_id:
        raise JobNotFoundError("item", str(item_id))
    return item


async def get_pending_item_ids(session: AsyncSession, job_id: str) -> list[int]:
    """Get ids of a job's pending items in upload order."""
    result = await session.execute(
        select(ImportItemDB.id)
        .where(ImportItemDB.job_id == job_id, ImportItemDB.status == ItemStatus.PENDING.value)
        .order_by(ImportItemDB.id)
    )
    return list(result.scalars().all())


async def claim_item(session: AsyncSession, item_id: int) -> ImportItemDB | None:
    """
    Move a pending item to processing.

    The conditional update means two workers can never claim the same item.

    Returns:
        The claimed item, or None if it was no longer pending.
    """
    result = await session.execute(
        update(ImportItemDB)
        .where(ImportItemDB.id == item_id, ImportItemDB.status == ItemStatus.PENDING.value)
        .values(status=ItemStatus.PROCESSING.value, updated_at=utcnow())
    )
    # rowcount is available on UPDATE results; type stubs incomplete for async
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        return None
    item = await session.get(ImportItemDB, item_id, populate_existing=True)
    return item


def _printing_for(identification: ScanIdentification) -> PrintingType:
    if identification.is_foil:
        return PrintingType.FOIL
    if identification.is_first_edition:
        return PrintingType.FIRST_EDITION
    return PrintingType.NORMAL


async def record_identification(
    session: AsyncSession, item: ImportItemDB, identification: ScanIdentification
) -> None:
    """Store an identification result and mark the item identified."""
    check_transition(ItemStatus(item.status), ItemStatus.IDENTIFIED)
    item.status = ItemStatus.IDENTIFIED.value
    item.card_id = identification.card_id
    item.card_name = identification.card_name
    item.set_code = identification.set_code
    item.set_name = identification.set_name
    item.card_number = identification.card_number
    item.game = identification.game
    item.confidence = identification.confidence
    item.reasoning = identification.reasoning
    item.observed_language = identification.observed_language
    item.candidates = [
        {
            "id": c.id,
            "name": c.name,
            "set_code": c.set_code,
            "set_name": c.set_name,
            "card_number": c.card_number,
            "rarity": c.rarity,
            "image_url": c.image_url,
            "game": c.game,
        }
        for c in identification.candidates
    ]
    item.language = identification.observed_language or "English"
    item.printing_type = _printing_for(identification).value
    item.error_code = None
    item.error_message = None
    item.updated_at = utcnow()
    await session.flush()


def _guess_to_dict(guess: IdentificationCandidate) -> dict[str, Any]:
    return {
        "name": guess.full_name(),
        "set_code": guess.set_code,
        "set_name": guess.set_name,
        "card_number": guess.card_number,
        "confidence": guess.confidence,
        "reasoning": guess.reasoning,
    }


async def mark_item_failed(
    session: AsyncSession,
    item: ImportItemDB,
    error_code: ErrorCode,
    message: str,
    guesses: list[IdentificationCandidate] | None = None,
) -> None:
    """
    Mark an item failed with a categorized error.

    Unmatched guesses are kept as candidates (without a card id) so the user
    can start a manual search from the best one.
    """
    check_transition(ItemStatus(item.status), ItemStatus.FAILED)
    item.status = ItemStatus.FAILED.value
    item.error_code = error_code.value
    item.error_message = message
    if guesses:
        item.candidates = [_guess_to_dict(guess) for guess in guesses]
    item.updated_at = utcnow()
    await session.flush()


async def update_item(
    session: AsyncSession,
    item: ImportItemDB,
    *,
    card_id: str | None = None,
    card_name: str | None = None,
    set_code: str | None = None,
    set_name: str | None = None,
    card_number: str | None = None,
    game: str | None = None,
    condition: str | None = None,
    printing_type: str | None = None,
    language: str | None = None,
) -> ImportItemDB:
    """
    Apply a user edit to an item.

    Selecting a card moves failed or skipped items to identified and clears
    their error; editing an identified item keeps it identified.

    Raises:
        ItemTransitionError: If the item can no longer be edited
    """
    if card_id is not None:
        check_transition(ItemStatus(item.status), ItemStatus.IDENTIFIED)
        item.status = ItemStatus.IDENTIFIED.value
        item.card_id = card_id
        item.error_code = None
        item.error_message = None
        if card_name is not None:
            item.card_name = card_name
        if set_code is not None:
            item.set_code = set_code
        if set_name is not None:
            item.set_name = set_name
        if card_number is not None:
            item.card_number = card_number
        if game is not None:
            item.game = game
    elif ItemStatus(item.status) == ItemStatus.CONFIRMED:
        check_transition(ItemStatus.CONFIRMED, ItemStatus.IDENTIFIED)

    if condition is not None:
        item.condition = condition
    if printing_type is not None:
        item.printing_type = printing_type
    if language is not None:
        item.language = language

    item.updated_at = utcnow()
    await session.flush()
    return item


async def skip_item(session: AsyncSession, item: ImportItemDB) -> None:
    """Exclude an item from confirmation."""
    check_transition(ItemStatus(item.status), ItemStatus.SKIPPED)
    item.status = ItemStatus.SKIPPED.value
    item.updated_at = utcnow()
    await session.flush()


def confirmable_items(job: ImportJobDB, item_ids: list[int] | None = None) -> list[ImportItemDB]:
    """Identified items of a job, restricted to item_ids when given."""
    wanted = set(item_ids) if item_ids else None
    return [
        item
        for item in job.items
        if item.status == ItemStatus.IDENTIFIED.value
        and item.card_id
        and (wanted is None or item.id in wanted)
    ]


async def confirm_item(session: AsyncSession, item: ImportItemDB) -> None:
    """Mark an item as added to the collection."""
    check_transition(ItemStatus(item.status), ItemStatus.CONFIRMED)
    item.status = ItemStatus.CONFIRMED.value
    item.updated_at = utcnow()
    await session.flush()


async def fail_stale_processing_items(session: AsyncSession, older_than: datetime) -> int:
    """
    Fail items left in processing by a worker that died.

    Each recovered item counts towards its job's processed total, so the job
    can still complete.

    Returns the number of items failed.
    """
    result = await session.execute(
        update(ImportItemDB)
        .where(
            ImportItemDB.status == ItemStatus.PROCESSING.value,
            ImportItemDB.updated_at < older_than,
        )
        .values(
            status=ItemStatus.FAILED.value,
            error_code=ErrorCode.TIMEOUT.value,
            error_message="Identification did not finish before the worker stopped",
            updated_at=utcnow(),
        )
        .returning(ImportItemDB.job_id)
        .execution_options(synchronize_session=False)
    )
    recovered = Counter(result.scalars().all())
    for job_id, count in recovered.items():
        await session.execute(
            update(ImportJobDB)
            .where(ImportJobDB.id == job_id)
            .values(processed_items=ImportJobDB.processed_items + count, updated_at=utcnow())
        )
    return sum(recovered.values())


# --- Lease Operations ---


async def acquire_lease(
    session: AsyncSession, name: str, owner_id: str, ttl: timedelta
) -> bool:
    """
    Try to take a named lease.

    Succeeds when the lease is free, expired, or already held by owner_id.
    Commits on its own so the lease is visible to other processes at once.

    Returns:
        True if owner_id now holds the lease.
    """
    now = utcnow()
    expires_at = now + ttl
    result = await session.execute(
        update(WorkerLeaseDB)
        .where(
            WorkerLeaseDB.name == name,
            (WorkerLeaseDB.expires_at < now) | (WorkerLeaseDB.owner_id == owner_id),
        )
        .values(owner_id=owner_id, expires_at=expires_at)
    )
    if int(result.rowcount) == 1:  # type: ignore[attr-defined]
        await session.commit()
        return True

    existing = await session.get(WorkerLeaseDB, name)
    if existing is not None:
        return False

    session.add(WorkerLeaseDB(name=name, owner_id=owner_id, expires_at=expires_at))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return False
    return True


async def release_lease(session: AsyncSession, name: str, owner_id: str) -> None:
    """Release a lease if owner_id still holds it."""
    await session.execute(
        delete(WorkerLeaseDB).where(WorkerLeaseDB.name == name, WorkerLeaseDB.owner_id == owner_id)
    )
    await session.commit()
