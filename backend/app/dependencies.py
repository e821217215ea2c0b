from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.core.errors import ProviderUnavailableError
from app.services.providers import DecisionProvider, PerceptionProvider

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a session; commit on success, roll back on error."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_perception_provider(request: Request) -> PerceptionProvider:
    provider = getattr(request.app.state, "perception_provider", None)
    if provider is None:
        raise ProviderUnavailableError("No perception provider configured")
    return provider


def get_decision_provider(request: Request) -> DecisionProvider:
    provider = getattr(request.app.state, "decision_provider", None)
    if provider is None:
        raise ProviderUnavailableError("No decision provider configured")
    return provider
