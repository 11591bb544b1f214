"""Lease store adapter over a SQLAlchemy async engine."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from leaderlease.errors import SchemaMissing, TransientStoreFailure, WriteRejected
from leaderlease.lease import LeaseRecord
from leaderlease.schema import create_lease_table, drop_lease_table, lease_table_exists

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE ... WHERE ... RETURNING
_UPSERT_INSERTS: dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is written in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LeaseStore:
    """
    Conditional reads, writes and deletes on the lease table.

    Every operation runs in its own transaction. Store failures are normalised
    into two outcomes: WriteRejected when another instance holds a valid lease
    (including unique violations from racing writers), and TransientStoreFailure
    for everything else (connection loss, timeouts, deadlocks, lock waits).
    """

    def __init__(
        self,
        engine: AsyncEngine,
        table: sa.Table,
        *,
        clock: Callable[[], datetime] | None = None,
        native_upsert: bool | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            engine: Async engine bound to the shared database
            table: The lease table (see ``schema.lease_table``)
            clock: Returns the current timezone-aware time (defaults to UTC now)
            native_upsert: Force (True) or disable (False) the single-statement
                upsert. None picks it when the dialect supports it.
        """
        self._engine = engine
        self._table = table
        self._clock = clock or _utcnow
        if native_upsert is None:
            native_upsert = engine.dialect.name in _UPSERT_INSERTS
        elif native_upsert and engine.dialect.name not in _UPSERT_INSERTS:
            raise ValueError(f"Dialect {engine.dialect.name!r} has no native upsert support")
        self._native_upsert = native_upsert

    @property
    def table(self) -> sa.Table:
        return self._table

    def now(self) -> datetime:
        return self._clock()

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncConnection]:
        try:
            async with self._engine.begin() as conn:
                yield conn
        except IntegrityError as exc:
            raise WriteRejected(f"{operation} conflicted with a concurrent writer") from exc
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            raise TransientStoreFailure(f"{operation} failed: {exc}") from exc

    async def claim(self, lock_id: int, instance_id: str, lease_duration: float) -> LeaseRecord:
        """
        Atomically claim the lease row for ``instance_id``.

        Succeeds if the row is absent, expired, or already owned by
        ``instance_id``; the row then holds ``instance_id`` with a fresh expiry.

        Returns:
            The row as written

        Raises:
            WriteRejected: If another instance holds a valid lease
            TransientStoreFailure: If the store operation failed
        """
        now = self._clock()
        expires_at = now + timedelta(seconds=lease_duration)

        async with self._transaction(f"claim of lease {lock_id}") as conn:
            if self._native_upsert:
                record = await self._upsert(conn, lock_id, instance_id, now, expires_at)
            else:
                record = await self._update_then_insert(conn, lock_id, instance_id, now, expires_at)

        if record is None:
            raise WriteRejected(f"Lease {lock_id} is held by another instance")
        return record

    async def _upsert(
        self,
        conn: AsyncConnection,
        lock_id: int,
        instance_id: str,
        now: datetime,
        expires_at: datetime,
    ) -> LeaseRecord | None:
        table = self._table
        insert = _UPSERT_INSERTS[self._engine.dialect.name]
        stmt = insert(table).values(
            id=lock_id,
            leader_id=instance_id,
            expires_at=expires_at,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={
                "leader_id": stmt.excluded.leader_id,
                "expires_at": stmt.excluded.expires_at,
            },
            where=sa.or_(table.c.leader_id == instance_id, table.c.expires_at < now),
        ).returning(*table.c)

        result = await conn.execute(stmt)
        row = result.first()
        return self._to_record(row) if row is not None else None

    async def _update_then_insert(
        self,
        conn: AsyncConnection,
        lock_id: int,
        instance_id: str,
        now: datetime,
        expires_at: datetime,
    ) -> LeaseRecord | None:
        table = self._table
        result = await conn.execute(
            sa.update(table)
            .where(
                table.c.id == lock_id,
                sa.or_(table.c.leader_id == instance_id, table.c.expires_at < now),
            )
            .values(leader_id=instance_id, expires_at=expires_at)
        )
        if result.rowcount:
            return LeaseRecord(id=lock_id, leader_id=instance_id, expires_at=expires_at)

        # No claimable row: either none exists or it belongs to someone else.
        # The primary key rejects the insert in the second case.
        await conn.execute(
            sa.insert(table).values(
                id=lock_id,
                leader_id=instance_id,
                expires_at=expires_at,
                created_at=now,
            )
        )
        return LeaseRecord(id=lock_id, leader_id=instance_id, expires_at=expires_at, created_at=now)

    async def release(self, lock_id: int, instance_id: str) -> bool:
        """
        Delete the lease row if ``instance_id`` owns it.

        Returns:
            True if a row was deleted
        """
        table = self._table
        async with self._transaction(f"release of lease {lock_id}") as conn:
            result = await conn.execute(
                sa.delete(table).where(table.c.id == lock_id, table.c.leader_id == instance_id)
            )
            deleted = result.rowcount
        return bool(deleted)

    async def reclaim(self, grace: float) -> int:
        """
        Delete rows that expired more than ``grace`` seconds ago.

        Returns:
            Number of rows deleted
        """
        table = self._table
        cutoff = self._clock() - timedelta(seconds=grace)
        async with self._transaction("reclaim of expired leases") as conn:
            result = await conn.execute(sa.delete(table).where(table.c.expires_at < cutoff))
            deleted = result.rowcount
        return deleted or 0

    async def get(self, lock_id: int) -> LeaseRecord | None:
        """Read the lease row for ``lock_id``."""
        table = self._table
        async with self._transaction(f"read of lease {lock_id}") as conn:
            result = await conn.execute(sa.select(table).where(table.c.id == lock_id))
            row = result.first()
        return self._to_record(row) if row is not None else None

    async def table_exists(self) -> bool:
        async with self._transaction("lease table lookup") as conn:
            return await lease_table_exists(conn, self._table)

    async def ensure_schema(self, create: bool) -> None:
        """
        Check the store is reachable and the lease table is usable.

        Args:
            create: Create the table if missing instead of failing

        Raises:
            SchemaMissing: If the table is absent and ``create`` is False
            TransientStoreFailure: If the store cannot be reached
        """
        name = self._table.fullname
        if not create:
            if not await self.table_exists():
                raise SchemaMissing(f"Lease table {name} does not exist")
            return

        try:
            async with self._transaction(f"creation of {name}") as conn:
                await create_lease_table(conn, self._table)
        except (WriteRejected, TransientStoreFailure) as exc:
            # Another instance may have won a concurrent CREATE TABLE
            if not await self.table_exists():
                raise TransientStoreFailure(f"Could not create lease table {name}: {exc}") from exc
            logger.debug("Lease table %s was created concurrently", name)

    async def drop_schema(self) -> None:
        """Drop the lease table."""
        async with self._transaction(f"drop of {self._table.fullname}") as conn:
            await drop_lease_table(conn, self._table)

    @staticmethod
    def _to_record(row: sa.Row[Any]) -> LeaseRecord:
        return LeaseRecord(
            id=row.id,
            leader_id=row.leader_id,
            expires_at=_aware(row.expires_at),  # type: ignore[arg-type]
            created_at=_aware(row.created_at),
        )
