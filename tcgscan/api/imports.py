"""
Batch import API endpoints.

Job lifecycle for bulk scanning: upload a batch of images, watch the
background worker identify them, correct what it got wrong, and confirm
the result into the collection.
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tcgscan.api.dependencies import (
    CollectionSink,
    get_catalog,
    get_collection_sink,
    get_image_storage,
)
from tcgscan.config import MAX_FILES_PER_JOB
from tcgscan.db import operations as ops
from tcgscan.db.database import get_session
from tcgscan.models.db import ImportItemDB, ImportJobDB, as_utc
from tcgscan.models.failure import InvalidImageError, JobNotFoundError
from tcgscan.models.identification import CardRecord
from tcgscan.models.import_job import ACTIVE_JOB_STATUSES, PrintingType
from tcgscan.models.scan import Game
from tcgscan.services.card_catalog import CardCatalog
from tcgscan.services.image_storage import ImageStorage, validate_image
from tcgscan.services.translation_cache import TranslationCacheService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/imports", tags=["imports"])


class CardResponse(BaseModel):
    """A catalog card."""

    id: str
    name: str
    game: str
    set_code: str = ""
    set_name: str = ""
    card_number: str = ""
    rarity: str = ""
    image_url: str = ""


class ItemResponse(BaseModel):
    """One image of an import job."""

    id: int
    original_filename: str
    status: str
    card_id: str | None = None
    card_name: str | None = None
    set_code: str | None = None
    set_name: str | None = None
    card_number: str | None = None
    game: str | None = None
    confidence: float = 0.0
    reasoning: str | None = None
    observed_language: str | None = None
    candidates: list[dict[str, Any]] = Field(default_factory=list)
    condition: str = "NM"
    printing_type: str = PrintingType.NORMAL.value
    language: str = "English"
    error_code: str | None = None
    error_message: str | None = None


class JobResponse(BaseModel):
    """An import job with its items."""

    id: str
    status: str
    total_items: int
    processed_items: int
    created_at: datetime
    updated_at: datetime
    items: list[ItemResponse] = Field(default_factory=list)


class UploadResponse(BaseModel):
    """Result of uploading images to a job."""

    job_id: str
    total_items: int
    status: str
    added: int
    errors: list[str] = Field(default_factory=list)


class ItemUpdateRequest(BaseModel):
    """User corrections to one item. Omitted fields are left alone."""

    card_id: str | None = Field(default=None, description="Catalog id of the correct card")
    condition: str | None = Field(default=None, max_length=10, examples=["NM", "LP"])
    printing_type: PrintingType | None = None
    language: str | None = Field(default=None, max_length=50)
    status: Literal["skipped"] | None = Field(
        default=None, description="Set to 'skipped' to leave the item out of confirmation"
    )


class ConfirmRequest(BaseModel):
    """Items to confirm; empty means every identified item."""

    item_ids: list[int] = Field(default_factory=list)


class ConfirmResponse(BaseModel):
    added: int
    skipped: int
    errors: list[str] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    job_id: str
    deleted: bool


# --- Converters ---


def card_to_response(card: CardRecord) -> CardResponse:
    return CardResponse(
        id=card.id,
        name=card.name,
        game=card.game,
        set_code=card.set_code,
        set_name=card.set_name,
        card_number=card.card_number,
        rarity=card.rarity,
        image_url=card.image_url,
    )


def item_to_response(item: ImportItemDB) -> ItemResponse:
    return ItemResponse(
        id=item.id,
        original_filename=item.original_filename,
        status=item.status,
        card_id=item.card_id,
        card_name=item.card_name,
        set_code=item.set_code,
        set_name=item.set_name,
        card_number=item.card_number,
        game=item.game,
        confidence=item.confidence or 0.0,
        reasoning=item.reasoning,
        observed_language=item.observed_language,
        candidates=item.candidates or [],
        condition=item.condition,
        printing_type=item.printing_type,
        language=item.language,
        error_code=item.error_code,
        error_message=item.error_message,
    )


def job_to_response(job: ImportJobDB) -> JobResponse:
    return JobResponse(
        id=job.id,
        status=job.status,
        total_items=job.total_items,
        processed_items=job.processed_items,
        created_at=as_utc(job.created_at),
        updated_at=as_utc(job.updated_at),
        items=[item_to_response(item) for item in job.items],
    )


async def _store_uploads(
    session: AsyncSession,
    storage: ImageStorage,
    job_id: str,
    images: list[UploadFile],
    texts: list[str] | None,
    language: str,
) -> tuple[int, list[str]]:
    """Validate, save and enqueue each upload. Returns (added, per-file errors)."""
    added = 0
    errors: list[str] = []
    for index, upload in enumerate(images):
        filename = upload.filename or f"image-{index + 1}"
        data = await upload.read()
        try:
            mime_type = validate_image(data, filename)
        except InvalidImageError as e:
            errors.append(e.message)
            continue

        image_path = storage.save(data, filename, mime_type)
        ocr_text = texts[index] if texts and index < len(texts) and texts[index] else None
        await ops.add_item(session, job_id, image_path, filename, ocr_text, language)
        added += 1
    return added, errors


def _check_upload_count(images: list[UploadFile]) -> None:
    if not images:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No images found in upload",
        )
    if len(images) > MAX_FILES_PER_JOB:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files: maximum is {MAX_FILES_PER_JOB}",
        )


# --- Endpoints ---


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def create_import(
    session: Annotated[AsyncSession, Depends(get_session)],
    storage: Annotated[ImageStorage, Depends(get_image_storage)],
    images: Annotated[list[UploadFile], File(description="Card images")],
    texts: Annotated[list[str] | None, Form(description="OCR text per image, in order")] = None,
    language: Annotated[str, Form(description="Declared card language")] = "",
) -> UploadResponse:
    """
    Start a batch import.

    Only one import may be pending or processing at a time; a second
    submission is rejected with 409 rather than queued. Files that are not
    valid images are reported in `errors` and left out of the job.
    """
    _check_upload_count(images)

    job = await ops.create_job(session, len(images))
    added, errors = await _store_uploads(session, storage, job.id, images, texts, language)

    if added == 0:
        await ops.delete_job(session, job.id)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "No files were successfully uploaded", "errors": errors},
        )

    job.total_items = added
    await session.flush()
    logger.info("IMPORT_CREATED", extra={"job_id": job.id, "items": added, "rejected": len(errors)})
    return UploadResponse(
        job_id=job.id, total_items=added, status=job.status, added=added, errors=errors
    )


@router.get("/current", response_model=JobResponse | None)
async def get_current_import(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> JobResponse | None:
    """The active import, else the most recent one, else null."""
    job = await ops.get_current_job(session)
    return job_to_response(job) if job is not None else None


@router.get("/search", response_model=list[CardResponse])
async def search_cards(
    catalog: Annotated[CardCatalog, Depends(get_catalog)],
    q: Annotated[str, Query(min_length=1, max_length=100)],
    game: Game | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> list[CardResponse]:
    """Manual card search, for items automatic identification got wrong."""
    cards = catalog.search(q, game.value if game else None, limit)
    return [card_to_response(card) for card in cards]


@router.get("/{job_id}", response_model=JobResponse)
async def get_import(
    job_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> JobResponse:
    job = await ops.get_job_or_raise(session, job_id)
    return job_to_response(job)


@router.post("/{job_id}/images", response_model=UploadResponse)
async def add_import_images(
    job_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    storage: Annotated[ImageStorage, Depends(get_image_storage)],
    images: Annotated[list[UploadFile], File(description="Card images")],
    texts: Annotated[list[str] | None, Form(description="OCR text per image, in order")] = None,
    language: Annotated[str, Form(description="Declared card language")] = "",
) -> UploadResponse:
    """Add images to a job that is still pending or processing (chunked uploads)."""
    _check_upload_count(images)

    job = await ops.get_job_or_raise(session, job_id)
    if job.status not in {s.value for s in ACTIVE_JOB_STATUSES}:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job is {job.status} and no longer accepts images",
        )
    if job.total_items + len(images) > MAX_FILES_PER_JOB:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files: maximum is {MAX_FILES_PER_JOB} per job",
        )

    added, errors = await _store_uploads(session, storage, job.id, images, texts, language)
    job.total_items += added
    await session.flush()
    return UploadResponse(
        job_id=job.id, total_items=job.total_items, status=job.status, added=added, errors=errors
    )


@router.put("/{job_id}/items/{item_id}", response_model=ItemResponse)
async def update_import_item(
    job_id: str,
    item_id: int,
    request: ItemUpdateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    catalog: Annotated[CardCatalog, Depends(get_catalog)],
) -> ItemResponse:
    """
    Correct an item.

    Selecting a card marks the item identified (also from failed or skipped)
    and remembers the choice for the item's OCR text, so the same text
    resolves to this card next time.
    """
    if request.model_dump(exclude_none=True) == {}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No updates provided",
        )

    item = await ops.get_item(session, job_id, item_id)

    if request.status == "skipped":
        await ops.skip_item(session, item)
        return item_to_response(item)

    card: CardRecord | None = None
    if request.card_id is not None:
        card = catalog.get_card(request.card_id)
        if card is None:
            raise JobNotFoundError("card", request.card_id)

    await ops.update_item(
        session,
        item,
        card_id=card.id if card else None,
        card_name=card.name if card else None,
        set_code=card.set_code if card else None,
        set_name=card.set_name if card else None,
        card_number=card.card_number if card else None,
        game=card.game if card else None,
        condition=request.condition,
        printing_type=request.printing_type.value if request.printing_type else None,
        language=request.language,
    )
    if card is not None and item.ocr_text:
        await TranslationCacheService(session).set_identity(item.ocr_text, card.id, card.name)

    return item_to_response(item)


@router.post("/{job_id}/confirm", response_model=ConfirmResponse)
async def confirm_import(
    job_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    catalog: Annotated[CardCatalog, Depends(get_catalog)],
    sink: Annotated[CollectionSink | None, Depends(get_collection_sink)],
    request: ConfirmRequest | None = None,
) -> ConfirmResponse:
    """
    Add identified items to the collection.

    Confirms the given item ids, or every identified item when none are given.
    """
    job = await ops.get_job_or_raise(session, job_id)
    items = ops.confirmable_items(job, request.item_ids if request else None)
    if not items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No items to confirm",
        )

    added = 0
    errors: list[str] = []
    for item in items:
        if catalog.get_card(item.card_id or "") is None:
            errors.append(f"Card {item.card_id} not found")
            continue
        if sink is not None:
            try:
                await sink.add_card(item)
            except Exception as e:
                logger.exception("COLLECTION_ADD_FAILED", extra={"item_id": item.id})
                errors.append(f"Failed to add {item.card_name}: {e}")
                continue
        await ops.confirm_item(session, item)
        added += 1

    logger.info("IMPORT_CONFIRMED", extra={"job_id": job_id, "added": added})
    return ConfirmResponse(added=added, skipped=len(items) - added, errors=errors)


@router.delete("/{job_id}", response_model=DeleteResponse)
async def delete_import(
    job_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    storage: Annotated[ImageStorage, Depends(get_image_storage)],
) -> DeleteResponse:
    """Delete a job, its items and their images."""
    image_paths = await ops.delete_job(session, job_id)
    for path in image_paths:
        storage.delete(path)
    return DeleteResponse(job_id=job_id, deleted=True)
