"""Engine async de PostgreSQL y session factory usada por los stores"""
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from typing import Optional
import logging

from shared.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None

ASYNC_DRIVER = "postgresql+asyncpg"


def to_async_url(database_url: str) -> str:
    """postgresql:// (o +psycopg) -> postgresql+asyncpg://, sin query string"""
    url = make_url(database_url.split("?")[0])
    if url.drivername.startswith("postgresql"):
        url = url.set(drivername=ASYNC_DRIVER)
    return url.render_as_string(hide_password=False)


async def init_db(database_url: Optional[str] = None) -> async_sessionmaker:
    """Crear engine y session factory; llamadas repetidas devuelven la existente"""
    global engine, async_session_maker

    if async_session_maker is not None:
        return async_session_maker

    url = to_async_url(database_url or settings.DATABASE_URL)
    engine = create_async_engine(
        url,
        echo=settings.APP_DEBUG,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        # Esperar un slot del pool no debe exceder el timeout del store
        pool_timeout=settings.STORE_TIMEOUT_SECONDS,
    )
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    logger.info(f"Database engine ready: {make_url(url).render_as_string(hide_password=True)}")
    return async_session_maker


def get_session_factory() -> async_sessionmaker:
    if async_session_maker is None:
        raise RuntimeError("Database not initialized: init_db() must run at startup")
    return async_session_maker


async def create_tables():
    """Crear el esquema (scripts locales y tests de integración)"""
    if engine is None:
        raise RuntimeError("Database not initialized: init_db() must run at startup")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    global engine, async_session_maker
    if engine is not None:
        await engine.dispose()
        logger.info("Database connections closed")
    engine = None
    async_session_maker = None
