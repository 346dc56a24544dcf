"""Magic link URL issuance.

Builds redemption URLs of the form::

    {backend_url}{route}?uid=42&exp=1700000000&nonce=...&sig=...&destination=/user

uid, exp and nonce are covered by the signature. destination is NOT: it is
an unsigned, caller-controlled path that redemption redirects to as-is.
"""

import secrets
import time
from collections.abc import Callable
from urllib.parse import quote, urlencode

import structlog

from magic_link.core.errors import InvalidInputError, InvalidUserError
from magic_link.core.tokens import LinkClass, TokenCodec

logger = structlog.get_logger()

SINGLE_USE_LOGIN_PATH = "/api/v1/auth/magic-link/login"
PERSISTENT_LOGIN_PATH = "/api/v1/auth/magic-link/persistent-login"

# Random bytes in each nonce (hex-encoded, so 16 characters)
NONCE_BYTES = 8

_ROUTES = {
    LinkClass.SINGLE_USE: SINGLE_USE_LOGIN_PATH,
    LinkClass.PERSISTENT: PERSISTENT_LOGIN_PATH,
}


def _wall_clock() -> int:
    return int(time.time())


class LinkIssuer:
    """Generates signed redemption URLs.

    Args:
        codec: Token signer.
        base_url: Scheme and host the redemption routes are served from.
        clock: Unix seconds source. Injected by tests.
    """

    def __init__(
        self,
        codec: TokenCodec,
        base_url: str,
        clock: Callable[[], int] = _wall_clock,
    ) -> None:
        self._codec = codec
        self._base_url = base_url.rstrip("/")
        self._clock = clock

    def issue(
        self,
        user_id: int,
        ttl_seconds: int,
        destination: str,
        link_class: LinkClass = LinkClass.SINGLE_USE,
    ) -> str:
        """Mint a redemption URL.

        Args:
            user_id: Account to sign in as. Must be positive.
            ttl_seconds: Lifetime from now. Must be positive.
            destination: Path to redirect to after login (unsigned).
            link_class: Single-use or persistent.

        Returns:
            Absolute redemption URL.

        Raises:
            InvalidUserError: If user_id <= 0.
            InvalidInputError: If ttl_seconds <= 0.
            MissingSecretError: If the signing secret is not configured.
        """
        if user_id <= 0:
            raise InvalidUserError(user_id)
        if ttl_seconds <= 0:
            raise InvalidInputError(
                f"Link lifetime must be positive, got {ttl_seconds} seconds"
            )

        nonce = link_class.tag_nonce(secrets.token_hex(NONCE_BYTES))
        expires_at = self._clock() + ttl_seconds
        signature = self._codec.sign(user_id, expires_at, nonce)

        params = urlencode(
            {
                "uid": user_id,
                "exp": expires_at,
                "nonce": nonce,
                "sig": signature,
                "destination": destination,
            },
            quote_via=quote,
        )
        logger.info(
            "Magic link issued",
            user_id=user_id,
            link_class=link_class.value,
            expires_at=expires_at,
        )
        return f"{self._base_url}{_ROUTES[link_class]}?{params}"
