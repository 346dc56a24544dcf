"""SQLAlchemy ORM models.

All models are exported from this module for convenient imports:
    from magic_link.models import User, ConsumedLinkSignature

- user.py: User (read-only here, owned by the host application)
- consumed_link.py: ConsumedLinkSignature (replay protection)
"""

from magic_link.models.base import Base
from magic_link.models.consumed_link import ConsumedLinkSignature
from magic_link.models.user import User

__all__ = [
    "Base",
    "ConsumedLinkSignature",
    "User",
]
