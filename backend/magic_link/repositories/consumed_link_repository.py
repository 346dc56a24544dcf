"""Repository and replay guard for consumed single-use signatures.

The consume statement is a single INSERT ... ON CONFLICT that only
overwrites a row whose expires_at has passed, so two concurrent
redemptions of the same signature cannot both succeed.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from magic_link.core.replay_guard import ReplayStoreUnavailableError, validate_ttl
from magic_link.models.consumed_link import ConsumedLinkSignature


class ConsumedLinkRepository:
    """Stateless repository for consumed_link_signatures.

    All methods are static; the caller owns the session.
    """

    @staticmethod
    async def consume(
        db: AsyncSession,
        *,
        signature: str,
        expires_at: datetime,
    ) -> bool:
        """Record a signature unless a live record already exists.

        Args:
            db: Async database session.
            signature: Signature being redeemed.
            expires_at: When the record may be forgotten.

        Returns:
            True if the row was inserted (or replaced an expired row),
            False if a live row already existed.
        """
        table = ConsumedLinkSignature.__table__
        stmt = insert(table).values(signature=signature, expires_at=expires_at)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.signature],
            set_={"expires_at": stmt.excluded.expires_at},
            where=table.c.expires_at < func.now(),
        ).returning(table.c.signature)
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def delete_expired(db: AsyncSession) -> int:
        """Delete all expired records (periodic cleanup).

        Args:
            db: Async database session.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(ConsumedLinkSignature).where(
            ConsumedLinkSignature.expires_at < datetime.now(UTC),
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count


class DatabaseReplayGuard:
    """ReplayGuard backed by PostgreSQL.

    Uses its own short-lived session so the consumption is committed
    before the login is finalized, independent of the request session.

    Args:
        session_factory: Factory for async sessions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def consume_once(self, signature: str, ttl_seconds: int) -> bool:
        validate_ttl(ttl_seconds)
        expires_at = datetime.now(UTC) + timedelta(seconds=ttl_seconds)
        try:
            async with self._session_factory() as session:
                consumed = await ConsumedLinkRepository.consume(
                    session, signature=signature, expires_at=expires_at
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise ReplayStoreUnavailableError(str(exc)) from exc
        return consumed

    async def purge_expired(self) -> int:
        try:
            async with self._session_factory() as session:
                removed = await ConsumedLinkRepository.delete_expired(session)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise ReplayStoreUnavailableError(str(exc)) from exc
        return removed
