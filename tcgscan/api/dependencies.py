"""
Shared FastAPI dependencies.

Long-lived collaborators (image store, identifier, translator, task queue)
are created once per process; tests replace them through
`app.dependency_overrides`.
"""

from functools import lru_cache
from typing import Protocol

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgscan.db.database import async_session_factory
from tcgscan.models.db import ImportItemDB
from tcgscan.models.failure import ServiceNotConfiguredError
from tcgscan.services.card_catalog import CardCatalog, get_card_catalog
from tcgscan.services.card_identifier import CardIdentifier
from tcgscan.services.image_storage import ImageStorage
from tcgscan.services.literal_translator import LiteralTranslator
from tcgscan.services.task_queue import TaskQueue
from tcgscan.services.task_queue import get_task_queue as _get_task_queue


class CollectionSink(Protocol):
    """Receives confirmed import items; implemented by the collection service."""

    async def add_card(self, item: ImportItemDB) -> None: ...


@lru_cache(maxsize=1)
def get_image_storage() -> ImageStorage:
    return ImageStorage.from_settings()


@lru_cache(maxsize=1)
def get_card_identifier() -> CardIdentifier:
    return CardIdentifier()


@lru_cache(maxsize=1)
def get_literal_translator() -> LiteralTranslator:
    return LiteralTranslator.from_settings()


def get_catalog() -> CardCatalog:
    """
    Raises:
        ServiceNotConfiguredError: If the catalog file has not been downloaded
    """
    try:
        return get_card_catalog()
    except FileNotFoundError as e:
        raise ServiceNotConfiguredError("Card catalog", "CARD_CATALOG_PATH") from e


def get_task_queue() -> TaskQueue:
    return _get_task_queue()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives the request."""
    return async_session_factory


def get_collection_sink(request: Request) -> CollectionSink | None:
    """Collection sink installed on app.state, if any."""
    sink: CollectionSink | None = getattr(request.app.state, "collection_sink", None)
    return sink


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"
