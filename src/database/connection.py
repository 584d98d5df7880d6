"""Async engine и сессии хранилища алармов.

Сессия не коммитит сама: каждое изменение аларма – явный commit в репозитории.
Схему создают миграции alembic (или scripts/init_db.py), не этот модуль.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from src.config.logging import get_logger
from src.config.settings import get_settings

logger = get_logger(__name__)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    # aiosqlite не переносит общий пул между event loop'ами (CLI, Celery eager)
    if url.startswith('sqlite'):
        return create_async_engine(url, echo=echo, poolclass=NullPool)
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


_settings = get_settings()
engine = build_engine(_settings.DATABASE_URL, echo=_settings.APP_DEBUG)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


async def check_connection() -> bool:
    """SELECT 1 для /health/db."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Maintenance DB unreachable: {e}")
        return False


__all__ = ['build_engine', 'engine', 'async_session_maker', 'get_async_session', 'check_connection']
