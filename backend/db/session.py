from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy import event
from core.config import get_settings
import logging
from typing import Optional

Base = declarative_base()
logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None

def _to_async_database_url(url: str) -> str:
    if not url:
        return url
    if url.startswith("mysql+pymysql://"):
        return url.replace("mysql+pymysql://", "mysql+aiomysql://", 1)
    if url.startswith("mysql://"):
        return url.replace("mysql://", "mysql+aiomysql://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url

def create_engine_for(url: str) -> AsyncEngine:
    """Build an async engine; pool tuning applies to server databases only."""
    async_url = _to_async_database_url(url)
    if async_url.startswith("sqlite"):
        engine = create_async_engine(async_url, future=True, echo=False)
    else:
        settings = get_settings()
        # pool_recycle < DB wait_timeout (often 600s)
        engine = create_async_engine(
            async_url,
            future=True,
            echo=False,
            pool_pre_ping=settings.DB_PRE_PING,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        logger.debug("DB connect: id=%s", id(connection_record))

    @event.listens_for(engine.sync_engine, "close")
    def _on_close(dbapi_connection, connection_record):
        logger.debug("DB close: id=%s", id(connection_record))

    return engine

def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine_for(get_settings().DATABASE_URL)
    return _engine

def get_session_factory() -> async_sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory

async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Disposed SQL engine")
    _engine = None
    _session_factory = None
