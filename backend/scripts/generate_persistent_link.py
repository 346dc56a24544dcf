"""Generate a persistent magic login link for an operator.

Unlike emailed links, persistent links:
- can be used any number of times until they expire,
- take an explicit lifetime between 1 minute and 4 weeks (default 1h),
- are meant for administrative and development use only.

Usage:
    cd backend && python -m scripts.generate_persistent_link
    cd backend && python -m scripts.generate_persistent_link 123 --expire 24h
    cd backend && python -m scripts.generate_persistent_link --expire 3d --destination /admin
"""

import argparse
import logging
import re
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import parse_qs, urlsplit

from sqlalchemy.ext.asyncio import AsyncSession

from magic_link.core.errors import APIError, InvalidInputError
from magic_link.core.tokens import LinkClass, TokenCodec
from magic_link.repositories.user_repository import UserRepository
from magic_link.services.link_issuer import LinkIssuer

logger = logging.getLogger(__name__)

_EXPIRE_RE = re.compile(r"^(\d+)([mhdw])$")

_UNIT_SECONDS = {
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}

MIN_EXPIRE_SECONDS = 60
MAX_EXPIRE_SECONDS = 4 * 604800


@dataclass
class GeneratedLink:
    """A minted persistent link and what it was minted for."""

    url: str
    user_id: int
    display_name: str
    expires_at: datetime
    destination: str


def parse_expire_time(expire: str) -> int:
    """Parse a duration such as "30m", "1h", "3d" or "1w" into seconds.

    Raises:
        InvalidInputError: If the format is wrong or the value falls
            outside 1 minute to 4 weeks.
    """
    match = _EXPIRE_RE.match(expire.strip())
    if match is None:
        raise InvalidInputError(
            f"Invalid expire format '{expire}'. "
            "Use formats like: 30m, 1h, 24h, 3d, 1w"
        )
    seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if not MIN_EXPIRE_SECONDS <= seconds <= MAX_EXPIRE_SECONDS:
        raise InvalidInputError("Expire time must be between 1 minute and 4 weeks.")
    return seconds


async def generate_persistent_link(
    session: AsyncSession,
    issuer: LinkIssuer,
    *,
    user_id: int,
    expire: str,
    destination: str,
) -> GeneratedLink:
    """Mint a persistent link for an existing, active user.

    Raises:
        InvalidInputError: Unknown or blocked user, or bad expire value.
        MissingSecretError: If the signing secret is not configured.
    """
    if user_id <= 0:
        raise InvalidInputError(f"User id must be a positive integer, got {user_id}")

    user = await UserRepository.get_by_id(session, user_id)
    if user is None:
        raise InvalidInputError(f"User with ID {user_id} does not exist.")
    if not user.is_active:
        raise InvalidInputError(
            f"User {user.display_name} (ID: {user_id}) is blocked."
        )

    ttl = parse_expire_time(expire)
    url = issuer.issue(user.id, ttl, destination, LinkClass.PERSISTENT)
    # Exactly the expiry that was signed into the link
    signed_exp = int(parse_qs(urlsplit(url).query)["exp"][0])
    return GeneratedLink(
        url=url,
        user_id=user.id,
        display_name=user.display_name,
        expires_at=datetime.fromtimestamp(signed_exp, UTC),
        destination=destination,
    )


def format_report(link: GeneratedLink) -> str:
    """Human-readable summary printed by the command."""
    return "\n".join(
        [
            f"Generated persistent magic link for {link.display_name} "
            f"(ID: {link.user_id}):",
            f"URL: {link.url}",
            f"Expires: {link.expires_at:%Y-%m-%d %H:%M:%S} UTC",
            f"Destination: {link.destination}",
            "",
            "Note: This link can be used multiple times until expiration.",
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="generate_persistent_link",
        description="Generate a persistent magic login link.",
    )
    parser.add_argument(
        "uid", nargs="?", type=int, default=1, help="User ID (default: 1)"
    )
    parser.add_argument(
        "--expire", default="1h", help="Lifetime, e.g. 30m, 1h, 24h, 3d, 1w"
    )
    parser.add_argument(
        "--destination", default="/user", help="Path to open after login"
    )
    return parser


async def main(argv: list[str] | None = None) -> int:
    """CLI entry point: mint a link against the configured database."""
    from magic_link.core.config import settings
    from magic_link.core.database import build_engine, build_session_factory

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)

    engine = build_engine(settings.database_url)
    factory = build_session_factory(engine)
    issuer = LinkIssuer(TokenCodec(settings.link_signing_secret), settings.backend_url)

    try:
        async with factory() as session:
            link = await generate_persistent_link(
                session,
                issuer,
                user_id=args.uid,
                expire=args.expire,
                destination=args.destination,
            )
    except APIError as exc:
        logger.error("%s", exc.message)
        return 1
    finally:
        await engine.dispose()

    print(format_report(link))  # noqa: T201
    return 0


if __name__ == "__main__":
    import asyncio

    sys.exit(asyncio.run(main()))
