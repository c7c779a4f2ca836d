"""
SQLAlchemy-backed store.

Tables:
- events: one row per (source, external_id), overwritten on re-scrape
- scrape_runs: one row per source invocation

Upserts use INSERT ... ON CONFLICT DO UPDATE (PostgreSQL and SQLite).
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from ..errors import RunStateError, StoreError
from ..models import Event, RunMetrics, RunStatus, ScrapeRun

logger = structlog.get_logger()

Base = declarative_base()

# Columns rewritten when a known (source, external_id) is upserted again
MUTABLE_COLUMNS = (
    "title",
    "start_datetime",
    "city",
    "venue_name",
    "image_url",
    "category",
    "is_free",
    "min_price",
    "price_text",
    "url",
    "raw_payload",
    "updated_at",
)

# Rows per INSERT statement; keeps SQLite under its bound-parameter limit
UPSERT_CHUNK_SIZE = 50

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventRow(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(32), nullable=False, index=True)
    external_id = Column(String(255), nullable=False)

    title = Column(Text, nullable=False)
    start_datetime = Column(String(19), nullable=False, index=True)  # naive local
    city = Column(String(64), nullable=False)
    venue_name = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    category = Column(String(64), nullable=True)
    is_free = Column(Boolean, nullable=False, default=False)
    min_price = Column(Float, nullable=True)
    price_text = Column(Text, nullable=True)
    url = Column(Text, nullable=False)
    raw_payload = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_events_source_external_id"),
    )


class ScrapeRunRow(Base):
    __tablename__ = "scrape_runs"

    id = Column(String(36), primary_key=True)
    source = Column(String(32), nullable=False, index=True)
    city = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default=RunStatus.RUNNING.value)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    items_fetched = Column(Integer, nullable=False, default=0)
    items_valid = Column(Integer, nullable=False, default=0)
    items_invalid = Column(Integer, nullable=False, default=0)
    items_upserted = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)


class SqlStore:
    """EventStore on any SQLAlchemy engine with ON CONFLICT support."""

    def __init__(self, database_url: str, echo: bool = False, create_tables: bool = True):
        try:
            self.engine = create_engine(database_url, echo=echo, future=True)
        except SQLAlchemyError as e:
            raise StoreError(f"Invalid database URL: {e}") from e
        self._insert = _INSERTS.get(self.engine.dialect.name)
        if self._insert is None:
            raise StoreError(f"Unsupported database dialect: {self.engine.dialect.name}")
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)
        if create_tables:
            try:
                Base.metadata.create_all(self.engine)
            except SQLAlchemyError as e:
                raise StoreError(f"Cannot create tables: {e}") from e

    def create_run(self, source: str, city: str) -> ScrapeRun:
        row = ScrapeRunRow(
            id=str(uuid.uuid4()),
            source=source,
            city=city,
            status=RunStatus.RUNNING.value,
            started_at=utc_now(),
        )
        try:
            with self._sessions.begin() as session:
                session.add(row)
        except SQLAlchemyError as e:
            raise StoreError(f"create_run failed: {e}") from e
        return _run_from_row(row)

    def finalize_run(
        self,
        run_id: str,
        status: RunStatus,
        metrics: RunMetrics,
        error_message: Optional[str] = None,
    ) -> ScrapeRun:
        if not status.is_terminal:
            raise RunStateError(f"Cannot finalize run {run_id} as {status.value}")

        stmt = (
            update(ScrapeRunRow)
            .where(ScrapeRunRow.id == run_id)
            .where(ScrapeRunRow.status == RunStatus.RUNNING.value)
            .values(
                status=status.value,
                ended_at=utc_now(),
                error_message=error_message,
                **metrics.model_dump(),
            )
        )
        try:
            with self._sessions.begin() as session:
                result = session.execute(stmt)
                updated = result.rowcount
        except SQLAlchemyError as e:
            raise StoreError(f"finalize_run failed: {e}") from e

        run = self.get_run(run_id)
        if run is None:
            raise StoreError(f"Unknown run {run_id}")
        if not updated:
            raise RunStateError(f"Run {run_id} is already {run.status.value}")
        return run

    def upsert_events(self, events: Sequence[Event]) -> int:
        if not events:
            return 0

        now = utc_now()
        values = [
            {
                **event.model_dump(),
                "created_at": now,
                "updated_at": now,
            }
            for event in events
        ]

        try:
            with self._sessions.begin() as session:
                for start in range(0, len(values), UPSERT_CHUNK_SIZE):
                    stmt = self._insert(EventRow).values(values[start:start + UPSERT_CHUNK_SIZE])
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["source", "external_id"],
                        set_={column: stmt.excluded[column] for column in MUTABLE_COLUMNS},
                    )
                    session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"upsert_events failed: {e}") from e

        logger.debug("events_upserted", count=len(values))
        return len(values)

    def get_run(self, run_id: str) -> Optional[ScrapeRun]:
        with self._sessions() as session:
            row = session.get(ScrapeRunRow, run_id)
            return _run_from_row(row) if row else None

    def get_event(self, source: str, external_id: str) -> Optional[Event]:
        stmt = select(EventRow).where(
            EventRow.source == source, EventRow.external_id == external_id
        )
        with self._sessions() as session:
            row = session.execute(stmt).scalar_one_or_none()
            return _event_from_row(row) if row else None

    def count_events(self, source: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(EventRow)
        if source:
            stmt = stmt.where(EventRow.source == source)
        with self._sessions() as session:
            return session.execute(stmt).scalar_one()

    def close(self) -> None:
        self.engine.dispose()


def _run_from_row(row: ScrapeRunRow) -> ScrapeRun:
    return ScrapeRun(
        id=row.id,
        source=row.source,
        city=row.city,
        status=RunStatus(row.status),
        started_at=row.started_at,
        ended_at=row.ended_at,
        items_fetched=row.items_fetched or 0,
        items_valid=row.items_valid or 0,
        items_invalid=row.items_invalid or 0,
        items_upserted=row.items_upserted or 0,
        error_message=row.error_message,
    )


def _event_from_row(row: EventRow) -> Event:
    return Event(
        source=row.source,
        external_id=row.external_id,
        title=row.title,
        start_datetime=row.start_datetime,
        city=row.city,
        venue_name=row.venue_name,
        image_url=row.image_url,
        category=row.category,
        is_free=row.is_free,
        min_price=row.min_price,
        price_text=row.price_text,
        url=row.url,
        raw_payload=row.raw_payload or {},
    )
