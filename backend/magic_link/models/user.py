"""User model - the accounts magic links sign in to.

Account management lives in the host application; this service only reads
users by id and email.
"""

from sqlalchemy import Boolean, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from magic_link.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """User account.

    Attributes:
        id: Positive integer primary key (signed into every token).
        email: Unique email address, stored lowercase.
        name: Display name. NULL falls back to username, then email.
        username: Login name.
        is_active: Blocked accounts cannot redeem links.
        is_admin: Admin accounts supply the fallback sender address.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        Integer(),
        primary_key=True,
        autoincrement=True,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    username: Mapped[str | None] = mapped_column(
        String(60),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean(),
        nullable=False,
        server_default=text("true"),
    )
    is_admin: Mapped[bool] = mapped_column(
        Boolean(),
        nullable=False,
        server_default=text("false"),
    )

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.email
