"""Shared dependencies for API endpoints.

Every collaborator of the magic link services is built here from settings
and handed over explicitly; services never look anything up themselves.
Tests replace any of these through app.dependency_overrides.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from magic_link.core.config import settings
from magic_link.core.database import async_session_factory, get_db
from magic_link.core.replay_guard import InMemoryReplayGuard, ReplayGuard
from magic_link.core.tokens import TokenCodec
from magic_link.repositories.consumed_link_repository import DatabaseReplayGuard
from magic_link.services.accounts import AccountLookup, DatabaseAccountLookup
from magic_link.services.link_issuer import LinkIssuer
from magic_link.services.link_redeemer import LinkRedeemer
from magic_link.services.mail_dispatcher import MailDispatcher
from magic_link.services.mail_templates import (
    resolve_email_template,
    resolve_sender_identity,
)
from magic_link.services.mail_transports import (
    MailTransport,
    ResendTransport,
    SmtpTransport,
)

# Process-wide store used when REPLAY_STORE=memory
_memory_replay_guard = InMemoryReplayGuard()

DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_token_codec() -> TokenCodec:
    """Codec keyed by the current link signing secret."""
    return TokenCodec(settings.link_signing_secret)


def get_account_lookup(db: DbSession) -> AccountLookup:
    return DatabaseAccountLookup(db)


def get_replay_guard() -> ReplayGuard:
    """Consumed-signature store selected by REPLAY_STORE."""
    if settings.replay_store == "memory":
        return _memory_replay_guard
    return DatabaseReplayGuard(async_session_factory)


Codec = Annotated[TokenCodec, Depends(get_token_codec)]
Accounts = Annotated[AccountLookup, Depends(get_account_lookup)]
Replay = Annotated[ReplayGuard, Depends(get_replay_guard)]


def get_link_issuer(codec: Codec) -> LinkIssuer:
    return LinkIssuer(codec, settings.backend_url)


def get_link_redeemer(codec: Codec, replay_guard: Replay, accounts: Accounts) -> LinkRedeemer:
    return LinkRedeemer(codec, replay_guard, accounts)


def _build_smtp_transport(*, plain_text_only: bool) -> SmtpTransport:
    return SmtpTransport(
        settings.smtp_host,
        settings.smtp_port,
        settings.mail_timeout_seconds,
        username=settings.smtp_username,
        password=settings.smtp_password,
        starttls=settings.smtp_starttls,
        plain_text_only=plain_text_only,
    )


def get_primary_transport() -> MailTransport:
    """Primary transport selected by MAIL_TRANSPORT."""
    if settings.mail_transport == "smtp":
        return _build_smtp_transport(plain_text_only=False)
    return ResendTransport(settings.resend_api_key, settings.mail_timeout_seconds)


def get_fallback_transport() -> MailTransport | None:
    """Minimal plain-text SMTP fallback, or None when disabled."""
    if not settings.mail_fallback_enabled:
        return None
    return _build_smtp_transport(plain_text_only=True)


async def get_mail_dispatcher(
    accounts: Accounts,
    primary: Annotated[MailTransport, Depends(get_primary_transport)],
    fallback: Annotated[MailTransport | None, Depends(get_fallback_transport)],
) -> MailDispatcher:
    """Dispatcher with sender identity resolved inside the request.

    The admin lookup happens here, while the request session is open,
    because delivery itself runs as a background task.
    """
    sender = resolve_sender_identity(
        configured_name=settings.email_from_name,
        configured_email=settings.email_from_address,
        site_name=settings.site_name,
        site_mail=settings.site_mail,
        admin_email=await accounts.get_admin_email(),
    )
    return MailDispatcher(
        primary,
        fallback,
        template=resolve_email_template(
            settings.email_subject_template, settings.email_body_template
        ),
        site_name=settings.site_name,
        sender=sender,
        timeout_seconds=settings.mail_timeout_seconds,
    )


Issuer = Annotated[LinkIssuer, Depends(get_link_issuer)]
Redeemer = Annotated[LinkRedeemer, Depends(get_link_redeemer)]
Dispatcher = Annotated[MailDispatcher, Depends(get_mail_dispatcher)]
