"""Run plain ``.sql`` migration files in name order, each once."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from .connection import connected, execute
from .sql import quote_identifier

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = logging.getLogger(__name__)

DEFAULT_MIGRATION_TABLE = "supple_migrations"


async def _completed_migrations(conn: AsyncConnection, table: str) -> set[str]:
    await execute(
        conn,
        f"CREATE TABLE IF NOT EXISTS {quote_identifier(table)} "
        "(key TEXT PRIMARY KEY, created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW())",
    )
    result = await execute(conn, f"SELECT key FROM {quote_identifier(table)}")
    return {row[0] for row in result.all()}


async def run_migrations(
    pool: AsyncEngine | None,
    path: str | Path,
    *,
    migration_table: str = DEFAULT_MIGRATION_TABLE,
) -> list[str]:
    """
    Apply every ``*.sql`` file under ``path`` not yet recorded in
    ``migration_table``. Each file runs in its own transaction together
    with its bookkeeping insert. Returns the names that were applied.
    """
    files = sorted(p for p in Path(path).iterdir() if p.suffix == ".sql")
    if not files:
        logger.info("Migrations to run: 0")
        return []

    completed = await connected(
        lambda conn: _completed_migrations(conn, migration_table), pool=pool
    )
    pending = [p for p in files if p.stem not in completed]
    logger.info("Migrations to run: %d", len(pending))

    width = len(str(len(pending)))
    for index, migration in enumerate(pending, start=1):
        logger.info(
            "Running migration %s/%d: %s",
            str(index).zfill(width),
            len(pending),
            migration.stem,
        )
        content = migration.read_text(encoding="utf-8")

        async def apply(
            conn: AsyncConnection, name: str = migration.stem, sql: str = content
        ) -> None:
            # Multi-statement files need asyncpg's simple query protocol.
            raw = await conn.get_raw_connection()
            driver = raw.driver_connection
            async with driver.transaction():
                await driver.execute(sql)
                await driver.execute(
                    f"INSERT INTO {quote_identifier(migration_table)} (key) "
                    "VALUES ($1)",
                    name,
                )

        await connected(apply, pool=pool)

    return [p.stem for p in pending]
