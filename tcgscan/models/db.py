"""
SQLAlchemy ORM models for persistent storage.

Import jobs and items, the translation/identification cache, and the
worker lease table.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ImportJobDB(Base):
    """
    A batch import job.

    `active_slot` is 1 while the job is pending or processing and NULL once it
    finishes. The unique constraint on it means only one active job can exist,
    enforced by the database rather than a read-then-write check.
    """

    __tablename__ = "import_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0)
    processed_items: Mapped[int] = mapped_column(Integer, default=0)
    active_slot: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    items: Mapped[list["ImportItemDB"]] = relationship(
        back_populates="job", cascade="all, delete-orphan", order_by="ImportItemDB.id"
    )

    def __repr__(self) -> str:
        return f"<ImportJobDB(id={self.id}, status={self.status})>"


class ImportItemDB(Base):
    """One uploaded image inside an import job."""

    __tablename__ = "import_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("import_jobs.id", ondelete="CASCADE"), index=True
    )
    original_filename: Mapped[str] = mapped_column(String(255), default="")
    image_path: Mapped[str] = mapped_column(String(255))
    ocr_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    declared_language: Mapped[str] = mapped_column(String(50), default="")
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)

    # Identification result
    card_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    card_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    set_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    set_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    card_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    game: Mapped[str | None] = mapped_column(String(20), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    observed_language: Mapped[str | None] = mapped_column(String(50), nullable=True)
    candidates: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)

    # User-editable fields
    condition: Mapped[str] = mapped_column(String(10), default="NM")
    printing_type: Mapped[str] = mapped_column(String(20), default="Normal")
    language: Mapped[str] = mapped_column(String(50), default="English")

    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    job: Mapped["ImportJobDB"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<ImportItemDB(id={self.id}, status={self.status}, card_id={self.card_id})>"


class TranslationCacheDB(Base):
    """
    Cached translation or confirmed identity, keyed by normalized text hash.

    Entries with a card_id were confirmed by a user and take precedence
    over translations.
    """

    __tablename__ = "translation_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    source_text: Mapped[str] = mapped_column(Text)
    translated_text: Mapped[str] = mapped_column(Text, default="")
    card_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    source_language: Mapped[str] = mapped_column(String(10), default="ja")
    source: Mapped[str] = mapped_column(String(20), default="unknown")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    hit_count: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<TranslationCacheDB(hash={self.source_hash[:12]}, source={self.source})>"


class WorkerLeaseDB(Base):
    """A named lease held by one worker process until it expires."""

    __tablename__ = "worker_leases"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<WorkerLeaseDB(name={self.name}, owner={self.owner_id})>"
