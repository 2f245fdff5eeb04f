"""Relational aggregation store built on SQLAlchemy asyncio.

One row per pending fingerprint. A partial unique index over
``fingerprint WHERE processed = false`` lets ``add`` run as a single
``INSERT ... ON CONFLICT DO UPDATE`` and lets ``drain_and_reset`` run as a
single ``UPDATE ... RETURNING``, so neither operation needs an explicit lock.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
    case,
    delete,
    false,
    func,
    select,
    text,
    true,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Mapped, mapped_column

from ..errors import StorageError
from ..fingerprint import fingerprint
from ..models import Batch, ErrorEntry, ExceptionInfo, RequestInfo, utcnow
from .base import AggregationStore, StorageBackend
from .database import Base, DatabaseConfig


logger = logging.getLogger(__name__)


# Upsert conflict targets must repeat the index predicate verbatim
PENDING_PREDICATES = {
    "postgresql": "processed = false",
    "sqlite": "processed = 0",
}

_INSERT_BUILDERS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ErrorEntryRecord(Base):
    """Aggregated error row; pending until a drain marks it processed."""

    __tablename__ = "faultline_error_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)

    # Exception snapshot
    message: Mapped[str] = mapped_column(Text, nullable=False)
    stack_trace: Mapped[str] = mapped_column(Text, nullable=False, default="")
    exception_type: Mapped[str] = mapped_column(String(255), nullable=False)

    # First-seen request sample
    sample_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sample_method: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    sample_headers_json: Mapped[Optional[Dict[str, str]]] = mapped_column(
        JSON,
        nullable=True,
        comment="Redacted request headers"
    )

    count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index(
            "uq_faultline_pending_fingerprint",
            "fingerprint",
            unique=True,
            postgresql_where=text(PENDING_PREDICATES["postgresql"]),
            sqlite_where=text(PENDING_PREDICATES["sqlite"]),
        ),
        Index("ix_faultline_processed_last_seen", "processed", "last_seen"),
        CheckConstraint("count >= 1", name="ck_faultline_count_positive"),
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyAggregationStore(AggregationStore):
    """Aggregation store persisted in PostgreSQL or SQLite."""

    backend_type = StorageBackend.RELATIONAL

    def __init__(
        self,
        database: Optional[DatabaseConfig] = None,
        url: Optional[str] = None,
        operation_timeout_seconds: float = 2.0,
    ):
        """Initialize relational store.

        Args:
            database: Database configuration (created from ``url`` if None)
            url: Database URL used when ``database`` is not given
            operation_timeout_seconds: Upper bound for a single statement
        """
        super().__init__(operation_timeout_seconds)
        self.database = database or DatabaseConfig(url=url)
        self._table = ErrorEntryRecord.__table__

    def _insert_builder(self):
        dialect = self.database.dialect_name
        builder = _INSERT_BUILDERS.get(dialect)
        if builder is None:
            raise StorageError(f"Unsupported database dialect for upsert: {dialect}")
        return builder, PENDING_PREDICATES[dialect]

    async def create_schema(self) -> None:
        """Create the entries table if it does not exist."""
        await self.database.create_all()

    async def initialize(self) -> None:
        await self._bounded(self.create_schema(), "initialize")

    async def add(self, exception: ExceptionInfo, request: RequestInfo) -> None:
        """Insert a pending row or increment the existing one."""
        await self._bounded(self._upsert(exception, request), "add")

    async def _upsert(self, exception: ExceptionInfo, request: RequestInfo) -> None:
        insert, pending_predicate = self._insert_builder()
        table = self._table
        now = utcnow()

        stmt = insert(table).values(
            fingerprint=fingerprint(exception),
            message=exception.message,
            stack_trace=exception.stack_trace,
            exception_type=exception.type_name,
            sample_url=request.url,
            sample_method=request.method,
            sample_headers_json=dict(request.headers),
            count=1,
            created_at=now,
            last_seen=now,
            processed=False,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.fingerprint],
            index_where=text(pending_predicate),
            set_={
                "count": table.c.count + 1,
                "last_seen": case(
                    (stmt.excluded.last_seen > table.c.last_seen, stmt.excluded.last_seen),
                    else_=table.c.last_seen,
                ),
            },
        )

        async with self.database.session() as session:
            await session.execute(stmt)

    async def drain_and_reset(self) -> Batch:
        """Mark every pending row processed and return it, in one statement."""
        rows = await self._bounded(self._mark_processed(), "drain")
        drained_at = utcnow()

        entries = [self._row_to_entry(row) for row in rows]
        entries.sort(key=lambda entry: entry.first_seen)
        return Batch(entries=entries, drained_at=drained_at)

    async def _mark_processed(self) -> List[Any]:
        table = self._table
        stmt = (
            update(table)
            .where(table.c.processed == false())
            .values(processed=True)
            .returning(
                table.c.fingerprint,
                table.c.message,
                table.c.stack_trace,
                table.c.exception_type,
                table.c.sample_url,
                table.c.sample_method,
                table.c.sample_headers_json,
                table.c.count,
                table.c.created_at,
                table.c.last_seen,
            )
        )

        async with self.database.session() as session:
            result = await session.execute(stmt)
            return list(result.all())

    def _row_to_entry(self, row: Any) -> ErrorEntry:
        first_seen = _as_utc(row.created_at)
        return ErrorEntry(
            fingerprint=row.fingerprint,
            count=row.count,
            exception=ExceptionInfo(
                message=row.message,
                stack_trace=row.stack_trace or "",
                type_name=row.exception_type,
            ),
            sample_request=RequestInfo(
                url=row.sample_url or "",
                method=row.sample_method or "",
                headers=row.sample_headers_json or {},
            ),
            first_seen=first_seen,
            last_seen=max(first_seen, _as_utc(row.last_seen)),
        )

    async def clear(self) -> None:
        """Delete every row, pending or processed."""
        await self._bounded(self._execute(delete(self._table)), "clear")

    async def purge_processed(self, older_than: timedelta) -> int:
        """Delete processed rows whose last occurrence is older than a cutoff.

        Args:
            older_than: Retention window for processed rows

        Returns:
            Number of rows deleted
        """
        table = self._table
        cutoff = utcnow() - older_than
        stmt = delete(table).where(table.c.processed == true(), table.c.last_seen < cutoff)

        deleted = await self._bounded(self._execute(stmt), "purge")
        if deleted:
            logger.info(f"Purged {deleted} processed error entries older than {cutoff.isoformat()}")
        return deleted

    async def _execute(self, stmt) -> int:
        async with self.database.session() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def pending_count(self) -> int:
        table = self._table
        stmt = select(func.count()).select_from(table).where(table.c.processed == false())

        async def _count() -> int:
            async with self.database.session() as session:
                return int((await session.execute(stmt)).scalar_one())

        return await self._bounded(_count(), "count")

    async def health_check(self) -> Dict[str, Any]:
        healthy = await self.database.health_check()
        return {
            'backend_type': 'SQLAlchemyAggregationStore',
            'backend': self.backend_type.value,
            'status': 'healthy' if healthy else 'unhealthy',
            'dialect': self.database.engine.dialect.name,
        }

    async def close(self) -> None:
        await self.database.close()
