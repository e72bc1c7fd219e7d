"""Tests for the translation/identity cache."""

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tcgscan.models.db import Base, TranslationCacheDB, utcnow
from tcgscan.models.identification import ResolutionSource
from tcgscan.services.translation_cache import (
    TranslationCacheService,
    expiry_for,
    hash_text,
    is_expired,
    normalize_text,
    truncate_text,
)


async def _entry(session: AsyncSession, text: str) -> TranslationCacheDB | None:
    result = await session.execute(
        select(TranslationCacheDB)
        .where(TranslationCacheDB.source_hash == hash_text(text))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


class TestNormalization:
    def test_line_order_does_not_matter(self) -> None:
        assert hash_text("ピカチュウ\nHP 60") == hash_text("HP 60\nピカチュウ")

    def test_fullwidth_folded(self) -> None:
        assert normalize_text("ＨＰ　６０ピカチュウ") == normalize_text("hp 60ピカチュウ")

    def test_blank_and_letterless_lines_dropped(self) -> None:
        assert normalize_text("ピカチュウ\n\n  025/185  \n") == "ピカチュウ"

    def test_whitespace_collapsed(self) -> None:
        assert normalize_text("Pikachu    V") == "pikachu v"

    def test_hash_is_hex_sha256(self) -> None:
        digest = hash_text("ピカチュウ")

        assert len(digest) == 64
        assert int(digest, 16) >= 0

    def test_truncate_counts_characters(self) -> None:
        text = "ピ" * 60

        assert truncate_text(text) == "ピ" * 50 + "..."
        assert truncate_text("short") == "short"


class TestExpiry:
    def test_primary_entries_expire(self) -> None:
        now = utcnow()

        assert expiry_for(ResolutionSource.PRIMARY.value, now) == now + timedelta(days=30)

    def test_other_sources_never_expire(self) -> None:
        for source in (ResolutionSource.FALLBACK, ResolutionSource.STATIC):
            assert expiry_for(source.value) is None

    def test_is_expired(self) -> None:
        entry = TranslationCacheDB(expires_at=utcnow() - timedelta(seconds=1))
        assert is_expired(entry) is True

        entry.expires_at = None
        assert is_expired(entry) is False


class TestTranslationCacheService:
    async def test_miss(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)

        assert await cache.get("ピカチュウ") == ("", False)
        assert await cache.get("") == ("", False)

    async def test_set_then_get(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("ピカチュウ", "Pikachu", ResolutionSource.FALLBACK)

        assert await cache.get("ピカチュウ") == ("Pikachu", True)

    async def test_hit_uses_normalized_text(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("ピカチュウ\nＨＰ６０", "Pikachu", ResolutionSource.FALLBACK)

        assert await cache.get("HP60\nピカチュウ") == ("Pikachu", True)

    async def test_hits_are_counted(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("ピカチュウ", "Pikachu", ResolutionSource.FALLBACK)

        await cache.get("ピカチュウ")
        await cache.get("ピカチュウ")

        entry = await _entry(session, "ピカチュウ")
        assert entry is not None
        assert entry.hit_count == 2

    async def test_upsert_keeps_one_entry(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("ピカチュウ", "Pikachu?", ResolutionSource.PRIMARY)
        await cache.set("ピカチュウ", "Pikachu", ResolutionSource.FALLBACK)

        stats = await cache.get_stats()
        entry = await _entry(session, "ピカチュウ")
        assert stats.total_entries == 1
        assert entry is not None
        assert entry.translated_text == "Pikachu"
        assert entry.source == "fallback"
        assert entry.expires_at is None

    async def test_expired_entry_is_deleted_on_read(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("ピカチュウ", "Pikachu", ResolutionSource.PRIMARY)
        entry = await _entry(session, "ピカチュウ")
        assert entry is not None
        entry.expires_at = utcnow() - timedelta(days=1)
        await session.flush()

        assert await cache.get("ピカチュウ") == ("", False)
        assert await _entry(session, "ピカチュウ") is None

    async def test_empty_values_not_stored(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("", "Pikachu", ResolutionSource.FALLBACK)
        await cache.set("ピカチュウ", "", ResolutionSource.FALLBACK)

        stats = await cache.get_stats()
        assert stats.total_entries == 0

    async def test_corrupt_entry_removed(self, session: AsyncSession) -> None:
        session.add(
            TranslationCacheDB(
                source_hash=hash_text("ピカチュウ"),
                source_text="ピカチュウ",
                translated_text="",
                source="fallback",
            )
        )
        await session.flush()
        cache = TranslationCacheService(session)

        assert await cache.get("ピカチュウ") == ("", False)
        assert await _entry(session, "ピカチュウ") is None


class TestIdentityCache:
    async def test_identity_round_trip(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set_identity("リザードン\n025/185", "swsh4-25")

        assert await cache.get_identity("025/185\nリザードン") == ("swsh4-25", True)

    async def test_identity_never_expires(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("リザードン", "Charizard", ResolutionSource.PRIMARY)
        await cache.set_identity("リザードン", "swsh4-25")

        entry = await _entry(session, "リザードン")
        assert entry is not None
        assert entry.expires_at is None
        assert entry.source == "user_confirmed"
        assert entry.translated_text == "Charizard"

    async def test_later_translation_keeps_identity(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set_identity("リザードン", "swsh4-25", "Charizard")
        await cache.set("リザードン", "Charizard", ResolutionSource.PRIMARY)

        entry = await _entry(session, "リザードン")
        assert entry is not None
        assert entry.card_id == "swsh4-25"
        assert entry.expires_at is None

    async def test_identity_only_entry_is_not_a_translation(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set_identity("リザードン", "swsh4-25")

        assert await cache.get("リザードン") == ("", False)
        assert await _entry(session, "リザードン") is not None

    async def test_translation_without_identity(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("リザードン", "Charizard", ResolutionSource.FALLBACK)

        assert await cache.get_identity("リザードン") == ("", False)


class TestCacheMaintenance:
    async def test_stats(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("ピカチュウ", "Pikachu", ResolutionSource.FALLBACK)
        await cache.set("リザードン", "Charizard", ResolutionSource.FALLBACK)
        await cache.get("ピカチュウ")

        stats = await cache.get_stats()

        assert stats.total_entries == 2
        assert stats.total_hits == 1

    async def test_purge_expired(self, session: AsyncSession) -> None:
        cache = TranslationCacheService(session)
        await cache.set("ピカチュウ", "Pikachu", ResolutionSource.PRIMARY)
        await cache.set("リザードン", "Charizard", ResolutionSource.FALLBACK)
        entry = await _entry(session, "ピカチュウ")
        assert entry is not None
        entry.expires_at = utcnow() - timedelta(hours=1)
        await session.flush()

        deleted = await cache.purge_expired()

        assert deleted == 1
        stats = await cache.get_stats()
        assert stats.total_entries == 1


@pytest.fixture
async def session_factory(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


class TestConcurrentWriters:
    async def test_two_sessions_store_same_text(self, session_factory) -> None:
        """A writer that starts before the other commits updates the same entry."""

        async def first_writer() -> None:
            async with session_factory() as session:
                await TranslationCacheService(session).set(
                    "ピカチュウ\nHP 60", "Pikachu?", ResolutionSource.PRIMARY
                )
                await asyncio.sleep(0.2)
                await session.commit()

        async def second_writer() -> None:
            await asyncio.sleep(0.05)
            async with session_factory() as session:
                await TranslationCacheService(session).set(
                    "HP 60\nピカチュウ", "Pikachu", ResolutionSource.FALLBACK
                )
                await session.commit()

        await asyncio.gather(first_writer(), second_writer())

        async with session_factory() as session:
            cache = TranslationCacheService(session)
            stats = await cache.get_stats()
            entry = await _entry(session, "ピカチュウ\nHP 60")
        assert stats.total_entries == 1
        assert entry is not None
        assert entry.translated_text == "Pikachu"
        assert entry.source == "fallback"
        assert entry.expires_at is None

    async def test_identity_and_translation_race(self, session_factory) -> None:
        async def confirm() -> None:
            async with session_factory() as session:
                await TranslationCacheService(session).set_identity("リザードン", "swsh4-25")
                await asyncio.sleep(0.2)
                await session.commit()

        async def translate() -> None:
            await asyncio.sleep(0.05)
            async with session_factory() as session:
                await TranslationCacheService(session).set(
                    "リザードン", "Charizard", ResolutionSource.PRIMARY
                )
                await session.commit()

        await asyncio.gather(confirm(), translate())

        async with session_factory() as session:
            cache = TranslationCacheService(session)
            assert await cache.get_identity("リザードン") == ("swsh4-25", True)
            entry = await _entry(session, "リザードン")
        assert entry is not None
        assert entry.translated_text == "Charizard"
        assert entry.expires_at is None
