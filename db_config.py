"""
Database configuration module using centralized settings.
"""
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine
from sqlalchemy.orm import declarative_base, sessionmaker
from core.config import settings
from core.logging import get_logger

logger = get_logger("database")


def build_async_engine(url: str) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    parsed = make_url(url)
    engine_kwargs = {"echo": settings.enable_sql_logging}
    if parsed.get_backend_name() != "sqlite":
        engine_kwargs.update(
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    logger.info("Database configuration loaded",
                backend=parsed.get_backend_name(), host=parsed.host, database=parsed.database)
    return create_async_engine(url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async_engine = build_async_engine(settings.async_database_url)
AsyncSessionLocal = build_session_factory(async_engine)

Base = declarative_base()


async def get_async_db():
    """FastAPI dependency yielding one session per request."""
    async with AsyncSessionLocal() as db:
        try:
            logger.debug("Async database session created")
            yield db
        except Exception as e:
            logger.error("Async database session error", error=str(e), exc_info=True)
            await db.rollback()
            raise
        finally:
            await db.close()
            logger.debug("Async database session closed")


async def dispose_engine():
    """Release pooled connections on shutdown."""
    await async_engine.dispose()
    logger.info("Database engine disposed")
