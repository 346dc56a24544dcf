"""Consumed link signature model - replay protection records.

One row per redeemed single-use signature. Rows are dead once expires_at
passes and may be replaced or purged.
"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from magic_link.models.base import Base


class ConsumedLinkSignature(Base):
    """Single-use signature that has already been redeemed.

    Attributes:
        signature: Base64url HMAC of the redeemed token.
        expires_at: When the record may be forgotten (token expiry).
    """

    __tablename__ = "consumed_link_signatures"

    signature: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
