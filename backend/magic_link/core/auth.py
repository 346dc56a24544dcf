"""Signing an account in once its magic link has been redeemed.

The session is a short-lived HS256 JWT stored in an HttpOnly cookie.
LinkRedeemer knows nothing about cookies: the endpoint hands it
``cookie_session_finalizer(response)`` and the cookie lands on whichever
response the endpoint returns.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import jwt
from fastapi import Response

from magic_link.core.config import settings
from magic_link.core.errors import MissingSecretError

if TYPE_CHECKING:
    from magic_link.services.accounts import Account

logger = logging.getLogger(__name__)

JWT_AUDIENCE = "magic-link"
JWT_ALGORITHM = "HS256"
SESSION_LIFETIME = timedelta(hours=1)


def create_jwt(
    *,
    user_id: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Encode a session token for ``user_id`` (sub, aud, iss, iat, exp)."""
    issued_at = datetime.now(UTC)
    lifetime = expires_delta if expires_delta is not None else SESSION_LIFETIME
    claims = {
        "sub": user_id,
        "aud": JWT_AUDIENCE,
        "iss": settings.auth_issuer,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)


def _cookie_scope() -> dict[str, Any]:
    # Browsers only delete a cookie whose scope matches the one that set it
    return {
        "key": settings.auth_cookie_name,
        "path": "/",
        "domain": settings.auth_cookie_domain or None,
        "secure": settings.auth_cookie_secure,
        "httponly": True,
        "samesite": settings.auth_cookie_samesite,
    }


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        value=token,
        max_age=int(SESSION_LIFETIME.total_seconds()),
        **_cookie_scope(),
    )


def clear_auth_cookie(response: Response) -> None:
    """Expire the session cookie (logout)."""
    response.delete_cookie(**_cookie_scope())


def require_session_secret() -> str:
    """The AUTH_SECRET value.

    Redemption calls this before consuming a single-use link, so a
    misconfigured server does not burn links it cannot sign in with.

    Raises:
        MissingSecretError: If AUTH_SECRET is empty.
    """
    secret = settings.auth_secret.get_secret_value()
    if not secret:
        logger.error("AUTH_SECRET is not configured; cannot start session")
        raise MissingSecretError("AUTH_SECRET")
    return secret


def cookie_session_finalizer(
    response: Response,
) -> Callable[["Account"], Awaitable[None]]:
    """Callback for LinkRedeemer that sets the session cookie on ``response``.

    The callback raises MissingSecretError without touching the response
    when AUTH_SECRET is empty.
    """

    async def finalize(account: "Account") -> None:
        secret = require_session_secret()
        set_auth_cookie(response, create_jwt(user_id=str(account.id), secret=secret))

    return finalize
