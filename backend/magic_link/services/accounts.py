"""Account lookup seam between the magic link flow and the user store.

Services depend on the AccountLookup protocol only. DatabaseAccountLookup
adapts UserRepository for the HTTP API; tests supply in-memory fakes.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from magic_link.repositories.user_repository import UserRepository


class Account(Protocol):
    """The fields of a user account the magic link flow reads."""

    @property
    def id(self) -> int: ...

    @property
    def email(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    @property
    def is_active(self) -> bool: ...


class AccountLookup(Protocol):
    """Read access to active accounts."""

    async def get_active_by_id(self, user_id: int) -> Account | None: ...

    async def get_active_by_email(self, email: str) -> Account | None: ...

    async def get_admin_email(self) -> str | None: ...


class DatabaseAccountLookup:
    """AccountLookup over the users table.

    Args:
        db: Request-scoped async session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_active_by_id(self, user_id: int) -> Account | None:
        return await UserRepository.get_active_by_id(self._db, user_id)

    async def get_active_by_email(self, email: str) -> Account | None:
        return await UserRepository.get_active_by_email(self._db, email)

    async def get_admin_email(self) -> str | None:
        admin = await UserRepository.get_primary_admin(self._db)
        return admin.email if admin is not None and admin.email else None
