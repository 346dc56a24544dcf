"""Read-only queries against the host application's users table.

Redemption looks users up by id, issuance by email, and the sender chain
needs the primary admin's address.
"""

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from magic_link.models.user import User


def _active() -> Select[tuple[User]]:
    return select(User).where(User.is_active.is_(True))


class UserRepository:
    """Static User queries; the caller owns the session and transaction."""

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: int) -> User | None:
        """Any user by primary key, blocked ones included."""
        return await db.get(User, user_id)

    @staticmethod
    async def get_active_by_id(db: AsyncSession, user_id: int) -> User | None:
        result = await db.execute(_active().where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_active_by_email(db: AsyncSession, email: str) -> User | None:
        """Active user whose email matches after trimming and lowercasing.

        Emails are stored lowercase, so a plain equality hits the unique
        index.
        """
        normalized = email.strip().lower()
        result = await db.execute(_active().where(User.email == normalized))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_primary_admin(db: AsyncSession) -> User | None:
        """Lowest-id active admin, or None when there is none.

        Args:
            db: Async database session.

        Returns:
            The admin whose address backs the default sender.
        """
        stmt = _active().where(User.is_admin.is_(True)).order_by(User.id).limit(1)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
