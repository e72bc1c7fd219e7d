"""
Operational status endpoint.

Reports what is configured and how much of the daily budget is used, so
an operator can tell why identification is degraded without reading logs.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tcgscan.api.dependencies import get_card_identifier, get_literal_translator
from tcgscan.db.database import get_session
from tcgscan.services.card_catalog import get_card_catalog
from tcgscan.services.card_identifier import CardIdentifier
from tcgscan.services.cost_controls import get_usage_tracker
from tcgscan.services.literal_translator import LiteralTranslator
from tcgscan.services.translation_cache import TranslationCacheService

router = APIRouter(tags=["status"])


class CacheStatus(BaseModel):
    total_entries: int
    total_hits: int


class ServicesStatus(BaseModel):
    identifier_enabled: bool
    translator_enabled: bool
    catalog_loaded: bool
    catalog_cards: int = 0
    worker_running: bool


class StatusResponse(BaseModel):
    cache: CacheStatus
    services: ServicesStatus
    usage: dict[str, Any]


def _catalog_size() -> int | None:
    try:
        return len(get_card_catalog())
    except FileNotFoundError:
        return None


@router.get("/status", response_model=StatusResponse)
async def get_status(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    identifier: Annotated[CardIdentifier, Depends(get_card_identifier)],
    translator: Annotated[LiteralTranslator, Depends(get_literal_translator)],
) -> StatusResponse:
    stats = await TranslationCacheService(session).get_stats()
    catalog_cards = _catalog_size()
    worker = getattr(request.app.state, "worker", None)
    return StatusResponse(
        cache=CacheStatus(total_entries=stats.total_entries, total_hits=stats.total_hits),
        services=ServicesStatus(
            identifier_enabled=identifier.is_enabled,
            translator_enabled=translator.is_enabled,
            catalog_loaded=catalog_cards is not None,
            catalog_cards=catalog_cards or 0,
            worker_running=bool(worker is not None and worker.is_running),
        ),
        usage=get_usage_tracker().get_diagnostics(),
    )
