"""Magic link email delivery with a single transport fallback.

deliver() renders the message once, tries the primary transport and, if
that reports failure or raises, tries the fallback transport exactly once
with the identical message. Each attempt is bounded by a fixed timeout.
Failures are logged and reported as False; nothing is raised, so the
public request path can stay neutral.
"""

import asyncio

import structlog

from magic_link.services.accounts import Account
from magic_link.services.mail_templates import (
    EmailTemplate,
    MailMessage,
    SenderIdentity,
    render_message,
)
from magic_link.services.mail_transports import MailTransport

logger = structlog.get_logger()


class MailDispatcher:
    """Renders and sends magic link emails.

    Args:
        primary: Transport tried first.
        fallback: Transport tried once if primary fails. None disables it.
        template: Subject and body templates.
        site_name: Value for the [site:name] placeholder.
        sender: From identity for every message.
        timeout_seconds: Upper bound for each transport attempt.
    """

    def __init__(
        self,
        primary: MailTransport,
        fallback: MailTransport | None,
        *,
        template: EmailTemplate,
        site_name: str,
        sender: SenderIdentity,
        timeout_seconds: float,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._template = template
        self._site_name = site_name
        self._sender = sender
        self._timeout = timeout_seconds

    def render(self, account: Account, url: str) -> MailMessage:
        return render_message(
            self._template,
            account=account,
            url=url,
            site_name=self._site_name,
            sender=self._sender,
        )

    async def deliver(self, account: Account, url: str) -> bool:
        """Send the magic link email for account.

        Returns:
            True if either transport accepted the message.
        """
        message = self.render(account, url)
        log = logger.bind(user_id=account.id)

        if await self._attempt(self._primary, message, log):
            return True

        if self._fallback is None:
            log.error("Magic link email not delivered; no fallback configured")
            return False

        log.warning(
            "Primary mail transport failed; trying fallback",
            primary=self._primary.name,
            fallback=self._fallback.name,
        )
        if await self._attempt(self._fallback, message, log):
            return True

        log.error("Magic link email not delivered by any transport")
        return False

    async def _attempt(
        self,
        transport: MailTransport,
        message: MailMessage,
        log: structlog.BoundLogger,
    ) -> bool:
        try:
            sent = await asyncio.wait_for(transport.send(message), self._timeout)
        except TimeoutError:
            log.warning(
                "Mail transport timed out",
                transport=transport.name,
                timeout_seconds=self._timeout,
            )
            return False
        except Exception as exc:
            log.warning(
                "Mail transport raised",
                transport=transport.name,
                error=type(exc).__name__,
            )
            return False

        if not sent:
            log.warning("Mail transport reported failure", transport=transport.name)
            return False

        log.info("Magic link email sent", transport=transport.name)
        return True
