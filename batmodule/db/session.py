import logging

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)


def build_session_factory(database_url: str, echo: bool = False) -> async_sessionmaker:
    """Engine + session factory; the engine is reachable via factory.kw["bind"]."""
    engine = create_async_engine(database_url, pool_pre_ping=True, echo=echo)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory(request: Request) -> async_sessionmaker:
    """Get the DB session factory from app state"""
    return request.app.state.session_factory


async def dispose_session_factory(factory: async_sessionmaker) -> None:
    engine = factory.kw.get("bind")
    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")
