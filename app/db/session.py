from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
from app.core.config import get_settings
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse
import ssl
import logging

logger = logging.getLogger(__name__)

settings = get_settings()


# Convert psycopg2 URL to asyncpg and handle sslmode parameter
# asyncpg doesn't accept sslmode as URL param, needs ssl context instead
def prepare_async_url(url: str) -> tuple[str, dict]:
    """Convert DATABASE_URL to an async driver URL and extract SSL settings."""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if not url.startswith("postgresql://"):
        # Already an async URL (e.g. postgresql+asyncpg://, sqlite+aiosqlite://)
        return url, {}

    url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)

    connect_args = {}

    if "sslmode" in query_params:
        sslmode = query_params.pop("sslmode")[0]
        if sslmode in ("require", "verify-ca", "verify-full"):
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
            connect_args["ssl"] = ssl_context

    # Rebuild URL without sslmode
    new_query = urlencode({k: v[0] for k, v in query_params.items()})
    new_parsed = parsed._replace(query=new_query)
    clean_url = urlunparse(new_parsed)

    return clean_url, connect_args


# Database is optional - orders and messages fall back to in-memory stores
engine = None
AsyncSessionLocal = None

if settings.DATABASE_URL:
    DATABASE_URL, connect_args = prepare_async_url(settings.DATABASE_URL)
    engine = create_async_engine(DATABASE_URL, echo=False, pool_pre_ping=True, connect_args=connect_args)
    AsyncSessionLocal = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
else:
    logger.warning("DATABASE_URL not configured. Orders and messages will be kept in memory.")

# Base class for models
Base = declarative_base()


async def init_db():
    """Create tables if a database is configured"""
    if engine is None:
        logger.warning("Database engine not initialized. Skipping database setup.")
        return

    # Import models to register them with Base.metadata
    from app.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables ready")


async def verify_database_connection() -> bool:
    """
    Verify the database is reachable.

    Returns:
        True if DB is available, False if running without persistence
    """
    if AsyncSessionLocal is None:
        return False

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"Database connection FAILED: {e}")
        return False


async def dispose_engine():
    if engine is not None:
        await engine.dispose()
