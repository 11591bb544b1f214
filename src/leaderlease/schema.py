"""Lease table definition and DDL helpers."""

import sqlalchemy as sa
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncConnection

TABLE_NAME = "leader_lease"
EXPIRES_INDEX = "leader_lease_expires"
OWNER_INDEX = "leader_lease_owner"


def lease_table(schema: str | None = "public", *, unique_owner_index: bool = False) -> sa.Table:
    """
    Build the lease table for ``schema``.

    Each call gets its own MetaData so tables for different schemas never clash.
    The optional unique index on ``(id, leader_id)`` makes renewal a pure update.
    """
    metadata = sa.MetaData()
    table = sa.Table(
        TABLE_NAME,
        metadata,
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("leader_id", sa.Text, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("expires_at > created_at", name="leader_lease_expiry_check"),
        sa.Index(EXPIRES_INDEX, "expires_at"),
        schema=schema,
    )
    if unique_owner_index:
        sa.Index(OWNER_INDEX, table.c.id, table.c.leader_id, unique=True)
    return table


def _create(sync_conn: Connection, table: sa.Table) -> None:
    table.create(sync_conn, checkfirst=True)
    # Indexes added to an already existing table
    for index in table.indexes:
        index.create(sync_conn, checkfirst=True)


async def create_lease_table(conn: AsyncConnection, table: sa.Table) -> None:
    """Create the lease table and its indexes if they do not exist."""
    await conn.run_sync(_create, table)


async def drop_lease_table(conn: AsyncConnection, table: sa.Table) -> None:
    """Drop the lease table (and with it its indexes) if it exists."""
    await conn.run_sync(table.drop, checkfirst=True)


async def lease_table_exists(conn: AsyncConnection, table: sa.Table) -> bool:
    """Check whether the lease table exists."""

    def _has_table(sync_conn: Connection) -> bool:
        return sa.inspect(sync_conn).has_table(table.name, schema=table.schema)

    return await conn.run_sync(_has_table)
