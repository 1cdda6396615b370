import os
import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import text, event
from config import settings
from tenacity import retry, stop_after_attempt, wait_fixed, retry_if_exception_type

try:
    import asyncpg.exceptions
    HAS_ASYNCPG = True
except ImportError:
    HAS_ASYNCPG = False

logger = logging.getLogger(__name__)


def get_database_url():
    # Desktop/local mode forces a SQLite file next to the app
    mode = os.getenv("DATABASE_MODE", "cloud")  # 'cloud' or 'local'

    if mode == "local":
        return "sqlite+aiosqlite:///./isp_billing_local.sqlite"

    return settings.database_url_async


# Engine configuration with auto-switching
DATABASE_URL = get_database_url()
connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.DEBUG,
    future=True,
    connect_args=connect_args
)


def enable_sqlite_savepoints(async_engine):
    """
    Let SQLAlchemy emit BEGIN itself on SQLite so SAVEPOINTs nest inside the
    session transaction (the driver would otherwise defer BEGIN until the
    first INSERT/UPDATE).
    """
    @event.listens_for(async_engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")


if DATABASE_URL.startswith("sqlite"):
    enable_sqlite_savepoints(engine)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    """Dependency for getting async database sessions"""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


# Exception types to retry on while the database comes up
retry_exceptions = (ConnectionRefusedError, OSError)
if HAS_ASYNCPG:
    retry_exceptions += (asyncpg.exceptions.PostgresError,)


@retry(
    retry=retry_if_exception_type(retry_exceptions),
    stop=stop_after_attempt(12),  # 60 seconds total (12 attempts * 5 seconds)
    wait=wait_fixed(5),
    reraise=True,
    before_sleep=lambda retry_state: logger.warning(
        f"Database connection attempt {retry_state.attempt_number} failed. "
        f"Retrying in 5 seconds... (Error: {retry_state.outcome.exception()})"
    )
)
async def init_db():
    """
    Initialize database tables and schema with retry logic.

    Retries up to 12 times (60 seconds total) if the database refuses
    connections, which happens when the database container or proxy
    starts after the API.
    """
    logger.info("Attempting to connect to database and run migrations...")

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection successful!")

        # Import here to avoid circular imports
        from migrations.schema_migrations import run_migrations
        await run_migrations(engine)

        logger.info("Database initialization complete!")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise
