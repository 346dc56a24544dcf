"""Signing and verification of magic link tokens.

A token is the triple (user_id, expires_at, nonce) plus an HMAC-SHA256
signature over ``"{user_id}|{expires_at}|{nonce}"``. The signature covers
all three fields, so none of them can be swapped for another issuance's
value. Signatures are URL-safe base64 without padding.

Link class travels on the wire as a nonce prefix. LinkClass is the only
code that reads or writes that prefix.
"""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from enum import Enum

from pydantic import SecretStr

from magic_link.core.errors import MissingSecretError

logger = logging.getLogger(__name__)

PERSISTENT_NONCE_PREFIX = "persist_"


class LinkClass(Enum):
    """Redemption semantics of a link."""

    SINGLE_USE = "single_use"
    PERSISTENT = "persistent"

    @classmethod
    def from_nonce(cls, nonce: str) -> "LinkClass":
        """Classify a nonce by its wire prefix."""
        if nonce.startswith(PERSISTENT_NONCE_PREFIX):
            return cls.PERSISTENT
        return cls.SINGLE_USE

    def tag_nonce(self, random_part: str) -> str:
        """Build the wire nonce for this class from a random string."""
        if self is LinkClass.PERSISTENT:
            return f"{PERSISTENT_NONCE_PREFIX}{random_part}"
        return random_part


@dataclass(frozen=True)
class MagicLinkToken:
    """Parsed token as received from a redemption URL.

    Attributes:
        user_id: Account id the token was issued for.
        expires_at: Unix timestamp (seconds) after which the token is dead.
        nonce: Random value, possibly carrying the persistent prefix.
        signature: Base64url HMAC supplied by the caller.
    """

    user_id: int
    expires_at: int
    nonce: str
    signature: str

    @property
    def link_class(self) -> LinkClass:
        return LinkClass.from_nonce(self.nonce)


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class TokenCodec:
    """HMAC signer/verifier keyed by the site-wide link secret.

    Args:
        secret: Signing key. An empty secret makes sign() raise and
            verify() return False.
    """

    def __init__(self, secret: SecretStr) -> None:
        self._secret = secret

    def __repr__(self) -> str:
        return f"{type(self).__name__}(secret={self._secret!r})"

    def sign(self, user_id: int, expires_at: int, nonce: str) -> str:
        """Compute the signature for a token triple.

        Raises:
            MissingSecretError: If the signing secret is empty.
        """
        key = self._secret.get_secret_value()
        if not key:
            raise MissingSecretError()
        payload = f"{user_id}|{expires_at}|{nonce}"
        digest = hmac.new(
            key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256
        ).digest()
        return _b64url(digest)

    def verify(
        self,
        user_id: int,
        expires_at: int,
        nonce: str,
        signature: str,
        now: int,
    ) -> bool:
        """Check expiry, then the signature in constant time.

        A token whose expires_at equals now is still valid. Never raises.
        """
        if expires_at < now:
            return False
        try:
            expected = self.sign(user_id, expires_at, nonce)
        except MissingSecretError:
            logger.error("Link signing secret is not configured; rejecting token")
            return False
        return hmac.compare_digest(
            expected.encode("ascii"), signature.encode("utf-8", "replace")
        )

    def verify_token(self, token: MagicLinkToken, now: int) -> bool:
        return self.verify(
            token.user_id, token.expires_at, token.nonce, token.signature, now
        )
