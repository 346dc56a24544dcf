"""Async PostgreSQL engine and sessions.

Two kinds of session users:
- request handlers, through the get_db dependency (one transaction per
  request, committed on success)
- DatabaseReplayGuard, which opens its own short sessions from
  async_session_factory so a consumed signature is committed before the
  login is finalized
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from magic_link.core.config import settings


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Engine with pre-ping so idle pooled connections are revalidated."""
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Accounts outlive the request session (mail delivery runs after it)
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(
    settings.database_url, echo=settings.environment == "development"
)
async_session_factory = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; rolled back if the handler raises."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
