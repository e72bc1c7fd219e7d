"""Tests for database CRUD operations."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tcgscan.db.operations import (
    acquire_lease,
    add_item,
    claim_item,
    complete_job_if_done,
    confirm_item,
    confirmable_items,
    create_job,
    delete_job,
    fail_stale_processing_items,
    fail_stuck_jobs,
    finish_job,
    get_current_job,
    get_item,
    get_job,
    get_pending_item_ids,
    increment_processed,
    mark_item_failed,
    record_identification,
    release_lease,
    skip_item,
    update_item,
)
from tcgscan.models.db import WorkerLeaseDB, utcnow
from tcgscan.models.failure import ItemTransitionError, JobConflictError, JobNotFoundError
from tcgscan.models.identification import (
    CardRecord,
    IdentificationCandidate,
    ScanIdentification,
)
from tcgscan.models.import_job import ErrorCode, ItemStatus, JobStatus

CHARIZARD = ScanIdentification(
    card_id="swsh4-25",
    card_name="Charizard",
    game="pokemon",
    set_code="swsh4",
    set_name="Vivid Voltage",
    card_number="25",
    confidence=0.92,
    observed_language="Japanese",
    is_foil=True,
    candidates=[CardRecord(id="swsh4-25", name="Charizard", game="pokemon")],
)


async def _job_with_items(session: AsyncSession, count: int = 2):
    job = await create_job(session, count)
    items = [await add_item(session, job.id, f"{job.id}/{n}.png", f"{n}.png") for n in range(count)]
    return job, items


class TestJobOperations:
    async def test_create_job(self, session: AsyncSession) -> None:
        job = await create_job(session, 3)

        assert job.status == JobStatus.PENDING.value
        assert job.total_items == 3
        assert job.active_slot == 1

    async def test_single_active_job(self, session: AsyncSession) -> None:
        first = await create_job(session, 1)

        with pytest.raises(JobConflictError) as exc_info:
            await create_job(session, 1)

        assert exc_info.value.status_code == 409
        assert exc_info.value.active_job_id == first.id

    async def test_new_job_after_finish(self, session: AsyncSession) -> None:
        first = await create_job(session, 1)
        await finish_job(session, first, JobStatus.COMPLETED)

        second = await create_job(session, 1)

        assert second.id != first.id
        assert first.active_slot is None

    async def test_current_job_prefers_active(self, session: AsyncSession) -> None:
        assert await get_current_job(session) is None

        job = await create_job(session, 1)
        current = await get_current_job(session)
        assert current is not None
        assert current.id == job.id

        await finish_job(session, job, JobStatus.COMPLETED)
        current = await get_current_job(session)
        assert current is not None
        assert current.status == JobStatus.COMPLETED.value

    async def test_increment_processed(self, session: AsyncSession) -> None:
        job = await create_job(session, 2)
        await increment_processed(session, job.id)
        await increment_processed(session, job.id)

        reloaded = await get_job(session, job.id)
        assert reloaded is not None
        assert reloaded.processed_items == 2

    async def test_delete_job_returns_image_paths(self, session: AsyncSession) -> None:
        job, _ = await _job_with_items(session)

        paths = await delete_job(session, job.id)

        assert paths == [f"{job.id}/0.png", f"{job.id}/1.png"]
        assert await get_job(session, job.id) is None

    async def test_delete_missing_job(self, session: AsyncSession) -> None:
        with pytest.raises(JobNotFoundError):
            await delete_job(session, "missing")

    async def test_fail_stuck_jobs(self, session: AsyncSession) -> None:
        job = await create_job(session, 1)
        job.created_at = utcnow() - timedelta(hours=3)
        await session.flush()

        failed = await fail_stuck_jobs(session, utcnow() - timedelta(hours=2))

        assert failed == 1
        assert job.status == JobStatus.FAILED.value
        assert job.active_slot is None


class TestCompletion:
    async def test_not_done_while_items_pending(self, session: AsyncSession) -> None:
        job, _ = await _job_with_items(session)

        assert await complete_job_if_done(session, job.id) is False
        assert job.status == JobStatus.PENDING.value

    async def test_done_when_all_items_settled(self, session: AsyncSession) -> None:
        job, items = await _job_with_items(session)
        for item in items:
            await claim_item(session, item.id)
        await record_identification(session, items[0], CHARIZARD)
        await mark_item_failed(session, items[1], ErrorCode.NO_MATCH, "no match")

        assert await complete_job_if_done(session, job.id) is True
        assert job.status == JobStatus.COMPLETED.value
        assert await complete_job_if_done(session, job.id) is False


class TestItemOperations:
    async def test_add_item_to_missing_job(self, session: AsyncSession) -> None:
        with pytest.raises(JobNotFoundError):
            await add_item(session, "missing", "x.png", "x.png")

    async def test_get_item_checks_job(self, session: AsyncSession) -> None:
        job, items = await _job_with_items(session, 1)

        assert (await get_item(session, job.id, items[0].id)).id == items[0].id
        with pytest.raises(JobNotFoundError):
            await get_item(session, "other-job", items[0].id)

    async def test_pending_ids_in_upload_order(self, session: AsyncSession) -> None:
        job, items = await _job_with_items(session, 3)
        await skip_item(session, items[1])

        assert await get_pending_item_ids(session, job.id) == [items[0].id, items[2].id]

    async def test_claim_is_exclusive(self, session: AsyncSession) -> None:
        _, items = await _job_with_items(session, 1)

        claimed = await claim_item(session, items[0].id)

        assert claimed is not None
        assert claimed.status == ItemStatus.PROCESSING.value
        assert await claim_item(session, items[0].id) is None

    async def test_record_identification(self, session: AsyncSession) -> None:
        _, items = await _job_with_items(session, 1)
        item = await claim_item(session, items[0].id)
        assert item is not None

        await record_identification(session, item, CHARIZARD)

        assert item.status == ItemStatus.IDENTIFIED.value
        assert item.card_id == "swsh4-25"
        assert item.language == "Japanese"
        assert item.printing_type == "Foil"
        assert item.candidates[0]["id"] == "swsh4-25"

    async def test_pending_item_cannot_be_identified_directly(
        self, session: AsyncSession
    ) -> None:
        _, items = await _job_with_items(session, 1)

        with pytest.raises(ItemTransitionError):
            await record_identification(session, items[0], CHARIZARD)

    async def test_manual_correction_of_failed_item(self, session: AsyncSession) -> None:
        _, items = await _job_with_items(session, 1)
        item = await claim_item(session, items[0].id)
        assert item is not None
        await mark_item_failed(session, item, ErrorCode.TIMEOUT, "timed out")

        await update_item(session, item, card_id="swsh4-25", card_name="Charizard", game="pokemon")

        assert item.status == ItemStatus.IDENTIFIED.value
        assert item.error_code is None
        assert item.error_message is None

    async def test_edit_keeps_identified(self, session: AsyncSession) -> None:
        _, items = await _job_with_items(session, 1)
        item = await claim_item(session, items[0].id)
        assert item is not None
        await record_identification(session, item, CHARIZARD)

        await update_item(session, item, condition="LP")

        assert item.status == ItemStatus.IDENTIFIED.value
        assert item.condition == "LP"

    async def test_confirmed_items_are_frozen(self, session: AsyncSession) -> None:
        _, items = await _job_with_items(session, 1)
        item = await claim_item(session, items[0].id)
        assert item is not None
        await record_identification(session, item, CHARIZARD)
        await confirm_item(session, item)

        with pytest.raises(ItemTransitionError):
            await update_item(session, item, condition="LP")
        with pytest.raises(ItemTransitionError):
            await skip_item(session, item)

    async def test_confirmable_items(self, session: AsyncSession) -> None:
        job, items = await _job_with_items(session, 3)
        for item in items[:2]:
            await claim_item(session, item.id)
            await record_identification(session, item, CHARIZARD)
        reloaded = await get_job(session, job.id)
        assert reloaded is not None

        assert [i.id for i in confirmable_items(reloaded)] == [items[0].id, items[1].id]
        assert [i.id for i in confirmable_items(reloaded, [items[1].id])] == [items[1].id]

    async def test_fail_stale_processing_items(self, session: AsyncSession) -> None:
        _, items = await _job_with_items(session, 2)
        stale = await claim_item(session, items[0].id)
        fresh = await claim_item(session, items[1].id)
        assert stale is not None and fresh is not None
        stale.updated_at = utcnow() - timedelta(hours=1)
        await session.flush()

        failed = await fail_stale_processing_items(session, utcnow() - timedelta(minutes=10))

        assert failed == 1
        await session.refresh(stale)
        await session.refresh(fresh)
        assert stale.status == ItemStatus.FAILED.value
        assert stale.error_code == ErrorCode.TIMEOUT.value
        assert fresh.status == ItemStatus.PROCESSING.value

    async def test_stale_recovery_counts_as_processed(self, session: AsyncSession) -> None:
        job, items = await _job_with_items(session, 3)
        for item in items:
            claimed = await claim_item(session, item.id)
            assert claimed is not None
            claimed.updated_at = utcnow() - timedelta(hours=1)
        await increment_processed(session, job.id)
        await session.flush()

        failed = await fail_stale_processing_items(session, utcnow() - timedelta(minutes=10))

        assert failed == 3
        reloaded = await get_job(session, job.id)
        assert reloaded is not None
        assert reloaded.processed_items == 4

    async def test_failed_item_keeps_guesses(self, session: AsyncSession) -> None:
        _, items = await _job_with_items(session, 1)
        item = await claim_item(session, items[0].id)
        assert item is not None
        guesses = [
            IdentificationCandidate(card_name="Raichu", confidence=0.4, form="Alolan"),
            IdentificationCandidate(card_name="Raichu", confidence=0.2, set_code="sm1"),
        ]

        await mark_item_failed(session, item, ErrorCode.NO_MATCH, "no match", guesses)

        assert item.status == ItemStatus.FAILED.value
        assert [c["name"] for c in item.candidates] == ["Alolan Raichu", "Raichu"]
        assert item.candidates[1]["set_code"] == "sm1"
        assert "card_id" not in item.candidates[0]


class TestLeaseOperations:
    async def test_acquire_free_lease(self, session: AsyncSession) -> None:
        assert await acquire_lease(session, "import", "worker-a", timedelta(minutes=1)) is True

    async def test_held_lease_is_busy(self, session: AsyncSession) -> None:
        await acquire_lease(session, "import", "worker-a", timedelta(minutes=1))

        assert await acquire_lease(session, "import", "worker-b", timedelta(minutes=1)) is False
        assert await acquire_lease(session, "import", "worker-a", timedelta(minutes=1)) is True

    async def test_expired_lease_can_be_taken(self, session: AsyncSession) -> None:
        await acquire_lease(session, "import", "worker-a", timedelta(minutes=1))
        lease = await session.get(WorkerLeaseDB, "import")
        assert lease is not None
        lease.expires_at = utcnow() - timedelta(seconds=5)
        await session.commit()

        assert await acquire_lease(session, "import", "worker-b", timedelta(minutes=1)) is True

    async def test_release(self, session: AsyncSession) -> None:
        await acquire_lease(session, "import", "worker-a", timedelta(minutes=1))

        await release_lease(session, "import", "worker-b")
        assert await acquire_lease(session, "import", "worker-b", timedelta(minutes=1)) is False

        await release_lease(session, "import", "worker-a")
        assert await acquire_lease(session, "import", "worker-b", timedelta(minutes=1)) is True
