import json
import logging
from decimal import Decimal
from datetime import datetime, date
from typing import AsyncGenerator
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from psycopg.types.json import set_json_dumps

from grn_recon.config import settings


logger = logging.getLogger(__name__)


# Custom JSON encoder that handles Decimal, datetime, UUID, etc.
class CustomJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, datetime, UUID and other types."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            # Keep money exact inside JSON columns
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)


def custom_json_dumps(obj):
    """Custom JSON dumps function shared by psycopg and the SQLAlchemy engine."""
    return json.dumps(obj, cls=CustomJSONEncoder)


# Configure psycopg to use our custom JSON encoder globally
set_json_dumps(custom_json_dumps)


def build_engine(database_url: str, **overrides):
    """Create the async engine for a database URL (PostgreSQL or SQLite)."""
    if database_url.startswith("sqlite"):
        options = {
            "echo": settings.DEBUG,
            "json_serializer": custom_json_dumps,
            "connect_args": {"check_same_thread": False},
        }
        options.update(overrides)
        return create_async_engine(database_url, **options)

    # Convert database URL for the psycopg 3 async driver
    if database_url.startswith("postgresql+asyncpg://"):
        database_url = database_url.replace("postgresql+asyncpg://", "postgresql+psycopg://")
    elif database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://")

    options = {
        "echo": settings.DEBUG,
        "json_serializer": custom_json_dumps,
        "pool_pre_ping": True,  # Check connection health before use
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "connect_args": {"connect_timeout": 30},
    }
    options.update(overrides)
    return create_async_engine(database_url, **options)


engine = build_engine(settings.DATABASE_URL)

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session.

    Endpoints commit explicitly once the whole unit of work succeeded;
    anything left uncommitted is rolled back here.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    # Import all models to register them with Base.metadata
    from grn_recon import models  # noqa: F401

    logger.info("Registered %d tables", len(Base.metadata.tables))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")
