"""
Translation/identification cache.

Keyed by the SHA-256 of normalized OCR text so that the same card scanned
twice (with different line order, spacing or full-width characters) hits
the same entry.

Normalization:
    NFC -> full-width ASCII to half-width -> lower-case
    -> collapse whitespace per line -> drop blank and letterless lines
    -> sort lines -> join with newline

INVARIANTS:
- Reading an expired entry deletes it and reports a miss
- Every hit increments hit_count
- primary entries expire after PRIMARY_CACHE_TTL_DAYS; all others never expire
- Identity entries (card_id set by a user) never expire and win over translations
"""

import hashlib
import logging
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, delete, func, null, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from tcgscan.config import PRIMARY_CACHE_TTL_DAYS
from tcgscan.models.db import TranslationCacheDB, as_utc, utcnow
from tcgscan.models.identification import ResolutionSource

logger = logging.getLogger(__name__)

FULLWIDTH_START = 0xFF01
FULLWIDTH_END = 0xFF5E
FULLWIDTH_OFFSET = 0xFEE0
IDEOGRAPHIC_SPACE = "　"

LOG_TEXT_LIMIT = 50

# One statement per write; concurrent sessions upsert on source_hash
UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _fold_fullwidth(text: str) -> str:
    chars = []
    for char in text:
        code = ord(char)
        if FULLWIDTH_START <= code <= FULLWIDTH_END:
            chars.append(chr(code - FULLWIDTH_OFFSET))
        elif char == IDEOGRAPHIC_SPACE:
            chars.append(" ")
        else:
            chars.append(char)
    return "".join(chars)


def normalize_text(text: str) -> str:
    """Canonical form of OCR text used as the cache key."""
    folded = _fold_fullwidth(unicodedata.normalize("NFC", text)).lower()
    lines = []
    for line in folded.split("\n"):
        collapsed = " ".join(line.split())
        if collapsed and any(char.isalpha() for char in collapsed):
            lines.append(collapsed)
    lines.sort()
    return "\n".join(lines)


def hash_text(text: str) -> str:
    """SHA-256 hex digest of the normalized text (64 characters)."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def truncate_text(text: str, max_len: int = LOG_TEXT_LIMIT) -> str:
    """Shorten text for logs, counting characters rather than bytes."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def is_expired(entry: TranslationCacheDB, now: datetime | None = None) -> bool:
    """Whether an entry's expiry has passed. Entries without expiry never expire."""
    if entry.expires_at is None:
        return False
    return as_utc(entry.expires_at) < (now or utcnow())


def expiry_for(source: str, now: datetime | None = None) -> datetime | None:
    """Primary AI entries get a TTL; every other source is kept forever."""
    if source == ResolutionSource.PRIMARY.value:
        return (now or utcnow()) + timedelta(days=PRIMARY_CACHE_TTL_DAYS)
    return None


@dataclass(frozen=True, slots=True)
class CacheStats:
    total_entries: int
    total_hits: int


class TranslationCacheService:
    """Cache reads and writes over one database session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _find(self, source_hash: str) -> TranslationCacheDB | None:
        result = await self.session.execute(
            select(TranslationCacheDB)
            .where(TranslationCacheDB.source_hash == source_hash)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _find_live(self, text: str) -> TranslationCacheDB | None:
        """Look up an entry, deleting it if expired."""
        source_hash = hash_text(text)
        entry = await self._find(source_hash)
        if entry is None:
            return None
        if is_expired(entry):
            logger.info("CACHE_EXPIRED", extra={"source_hash": source_hash[:12]})
            await self.session.delete(entry)
            await self.session.flush()
            return None
        return entry

    async def get(self, text: str) -> tuple[str, bool]:
        """
        Look up a cached translation.

        Returns:
            (translated_text, True) on a hit, ("", False) on a miss.
        """
        if not text:
            return "", False

        entry = await self._find_live(text)
        if entry is None:
            return "", False

        if not entry.translated_text:
            if entry.card_id is None:
                # Nothing usable stored under this key
                logger.warning("CACHE_ENTRY_CORRUPT", extra={"source_hash": entry.source_hash[:12]})
                await self.session.delete(entry)
                await self.session.flush()
            return "", False

        entry.hit_count += 1
        await self.session.flush()
        logger.debug("CACHE_HIT", extra={"source": entry.source, "hits": entry.hit_count})
        return entry.translated_text, True

    def _insert(self) -> Any:
        """Dialect insert that supports ON CONFLICT DO UPDATE."""
        dialect = self.session.get_bind().dialect.name
        try:
            return UPSERT_INSERTS[dialect](TranslationCacheDB)
        except KeyError:
            raise NotImplementedError(f"Cache upsert not supported on {dialect}") from None

    async def set(
        self,
        text: str,
        translated_text: str,
        source: ResolutionSource | str,
        source_language: str = "ja",
    ) -> None:
        """
        Store a translation, replacing any existing one for the same text.

        An existing identity entry keeps its card_id and never gains an expiry.
        """
        if not text or not translated_text:
            return

        source_value = source.value if isinstance(source, ResolutionSource) else source
        table = TranslationCacheDB.__table__.c
        stmt = self._insert().values(
            source_hash=hash_text(text),
            source_text=text,
            translated_text=translated_text,
            source_language=source_language,
            source=source_value,
            expires_at=expiry_for(source_value),
            hit_count=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.source_hash],
            set_={
                "translated_text": stmt.excluded.translated_text,
                "source": stmt.excluded.source,
                "expires_at": case(
                    (table.card_id.is_not(None), null()), else_=stmt.excluded.expires_at
                ),
            },
        )
        await self.session.execute(stmt)
        logger.info(
            "CACHE_STORED",
            extra={"source": source_value, "text": truncate_text(text)},
        )

    async def set_identity(self, text: str, card_id: str, translated_text: str = "") -> None:
        """Record a user-confirmed card identity for this text. Never expires."""
        if not text or not card_id:
            return

        table = TranslationCacheDB.__table__.c
        stmt = self._insert().values(
            source_hash=hash_text(text),
            source_text=text,
            translated_text=translated_text,
            card_id=card_id,
            source=ResolutionSource.USER_CONFIRMED.value,
            expires_at=None,
            hit_count=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.source_hash],
            set_={
                "card_id": stmt.excluded.card_id,
                "source": stmt.excluded.source,
                "expires_at": null(),
                # An empty translation keeps the stored one
                "translated_text": case(
                    (stmt.excluded.translated_text != "", stmt.excluded.translated_text),
                    else_=table.translated_text,
                ),
            },
        )
        await self.session.execute(stmt)
        logger.info("CACHE_IDENTITY_STORED", extra={"card_id": card_id})

    async def get_identity(self, text: str) -> tuple[str, bool]:
        """
        Look up a user-confirmed card identity.

        Returns:
            (card_id, True) on a hit, ("", False) otherwise.
        """
        if not text:
            return "", False

        entry = await self._find_live(text)
        if entry is None or not entry.card_id:
            return "", False

        entry.hit_count += 1
        await self.session.flush()
        return entry.card_id, True

    async def get_stats(self) -> CacheStats:
        """Total entries and total hits across the cache."""
        result = await self.session.execute(
            select(
                func.count(TranslationCacheDB.id),
                func.coalesce(func.sum(TranslationCacheDB.hit_count), 0),
            )
        )
        total_entries, total_hits = result.one()
        return CacheStats(total_entries=int(total_entries), total_hits=int(total_hits))

    async def purge_expired(self) -> int:
        """Delete every expired entry. Returns the number deleted."""
        result = await self.session.execute(
            delete(TranslationCacheDB).where(
                TranslationCacheDB.expires_at.is_not(None),
                TranslationCacheDB.expires_at < utcnow(),
            )
        )
        # rowcount is available on DELETE results; type stubs incomplete for async
        deleted = int(result.rowcount)  # type: ignore[attr-defined]
        if deleted:
            logger.info("CACHE_PURGED", extra={"deleted": deleted})
        return deleted
