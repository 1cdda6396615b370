"""
Auto-migration for schema changes.

Runs at startup: creates missing tables from the models and, on PostgreSQL,
adds columns that were introduced after a table was first created.
Safe to run repeatedly.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports when running standalone
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from database import Base
import models  # noqa: F401  registers every table on Base.metadata

logger = logging.getLogger(__name__)


async def get_table_columns(engine: AsyncEngine, table_name: str) -> set:
    """Column names that exist in the database for a table."""
    async with engine.connect() as conn:
        if engine.dialect.name == "sqlite":
            result = await conn.execute(text(f"PRAGMA table_info({table_name})"))
            return {row[1] for row in result}
        result = await conn.execute(
            text("SELECT column_name FROM information_schema.columns WHERE table_name = :table"),
            {"table": table_name}
        )
        return {row[0] for row in result}


def _default_clause(col) -> str:
    if col.default is None or not hasattr(col.default, 'arg') or callable(col.default.arg):
        # Python-side callables such as datetime.utcnow have no SQL equivalent
        return ""
    value = col.default.arg
    if isinstance(value, str):
        return f"DEFAULT '{value}'"
    if isinstance(value, (bool, int, float)):
        return f"DEFAULT {value}"
    if hasattr(value, 'value'):
        return f"DEFAULT '{value.name}'"
    return ""


async def add_missing_columns(engine: AsyncEngine) -> int:
    """
    Compare every model table with the database and add missing columns.
    Returns the number of columns added.
    """
    if engine.dialect.name == "sqlite":
        logger.info("ℹ️ Skipping column detection for SQLite. create_all handles table creation.")
        return 0

    logger.info("🔍 Checking for missing database columns...")
    added = 0

    for table_name, table in Base.metadata.tables.items():
        db_columns = await get_table_columns(engine, table_name)
        if not db_columns:
            continue

        missing_columns = {col.name for col in table.columns} - db_columns
        if not missing_columns:
            logger.debug(f"✅ Table '{table_name}' schema is up to date")
            continue

        logger.info(f"📝 Table '{table_name}' is missing columns: {missing_columns}")
        async with engine.begin() as conn:
            for col_name in sorted(missing_columns):
                col = table.columns[col_name]
                col_type = col.type.compile(engine.dialect)
                # New columns on populated tables must accept existing rows
                nullable = "NULL" if col.nullable or col.default is None else "NOT NULL"
                alter_sql = (
                    f"ALTER TABLE {table_name} "
                    f"ADD COLUMN IF NOT EXISTS {col_name} {col_type} {nullable} {_default_clause(col)}"
                )
                try:
                    await conn.execute(text(alter_sql))
                    logger.info(f"✅ Added column {table_name}.{col_name}")
                    added += 1
                except Exception as e:
                    logger.error(f"❌ Failed to add column {table_name}.{col_name}: {e}")
                    raise

    if added:
        logger.info(f"✅ Schema migration completed - {added} column(s) added")
    else:
        logger.info("✅ Schema is up to date - no changes needed")
    return added


async def run_migrations(engine: AsyncEngine):
    """
    Main migration entry point.
    1. Creates missing tables (via create_all)
    2. Adds missing columns to existing tables
    """
    logger.info("=" * 60)
    logger.info("Starting database schema migration...")
    logger.info("=" * 60)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ All tables exist")

    await add_missing_columns(engine)

    logger.info("=" * 60)
    logger.info("Database schema migration completed!")
    logger.info("=" * 60)


if __name__ == "__main__":
    # Allow running migrations standalone
    from database import engine as app_engine
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_migrations(app_engine))
