"""Processed-record store on an async SQLAlchemy engine.

Only ``exists`` and ``append`` are offered: records are never updated
or deleted here, and the unique constraint on ``message_id`` is the
last line of defence against a second record for one message.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import Boolean, DateTime, Integer, Text, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .config import StoreConfig
from .errors import DuplicateRecordError, StoreError
from .models import ProcessedRecord, Verdict

logger = structlog.get_logger()


class Base(DeclarativeBase):
    pass


class ProcessedEmail(Base):
    __tablename__ = "processed_emails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    sender: Mapped[str] = mapped_column(Text, nullable=False)
    notified: Mapped[bool] = mapped_column(Boolean, nullable=False)
    important: Mapped[bool] = mapped_column(Boolean, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    classification_error: Mapped[str | None] = mapped_column(Text)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_record(self) -> ProcessedRecord:
        return ProcessedRecord(
            message_id=self.message_id,
            sender=self.sender,
            notified=self.notified,
            verdict=Verdict(important=self.important, summary=self.summary, reason=self.reason),
            classification_error=self.classification_error,
            processed_at=self.processed_at,
        )


class ProcessedRecordStore:
    """Append-only set of :class:`ProcessedRecord` keyed by message id."""

    def __init__(self, config: StoreConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._session: async_sessionmaker[AsyncSession] | None = None

    async def start(self) -> None:
        """Create the engine and the table if it does not exist yet."""
        self._engine = create_async_engine(self._config.database_url, echo=False)
        self._session = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"cannot initialise store: {exc}") from exc
        logger.info("store_started", url=self._engine.url.render_as_string(hide_password=True))

    async def stop(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("store_stopped")

    async def exists(self, message_id: str) -> bool:
        stmt = select(ProcessedEmail.id).where(ProcessedEmail.message_id == message_id).limit(1)
        try:
            async with self._sessions()() as session:
                return (await session.execute(stmt)).scalar_one_or_none() is not None
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"lookup failed for {message_id}: {exc}") from exc

    async def append(self, record: ProcessedRecord) -> None:
        row = ProcessedEmail(
            message_id=record.message_id,
            sender=record.sender,
            notified=record.notified,
            important=record.verdict.important,
            summary=record.verdict.summary,
            reason=record.verdict.reason,
            classification_error=record.classification_error,
            processed_at=record.processed_at,
        )
        try:
            async with self._sessions()() as session:
                session.add(row)
                await session.commit()
        except IntegrityError as exc:
            raise DuplicateRecordError(f"record already exists for {record.message_id}") from exc
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"insert failed for {record.message_id}: {exc}") from exc
        logger.debug("record_appended", message_id=record.message_id, notified=record.notified)

    async def get(self, message_id: str) -> ProcessedRecord | None:
        stmt = select(ProcessedEmail).where(ProcessedEmail.message_id == message_id)
        try:
            async with self._sessions()() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"lookup failed for {message_id}: {exc}") from exc
        return row.to_record() if row is not None else None

    async def count(self) -> int:
        stmt = select(func.count()).select_from(ProcessedEmail)
        try:
            async with self._sessions()() as session:
                return (await session.execute(stmt)).scalar_one()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"count failed: {exc}") from exc

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._session is None:
            raise StoreError("store not started")
        return self._session
