"""Mail transports for magic link delivery.

- ResendTransport: HTTPS POST to the Resend API (primary by default).
- SmtpTransport: direct SMTP hand-off via smtplib. With plain_text_only it
  is the minimal fallback transport: one text/plain part and the
  X-Auth-Magic header.

A transport returns False for an explicit failure result and raises
DeliveryError for transport errors. MailDispatcher handles both the same.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

import httpx
from pydantic import SecretStr

from magic_link.core.errors import DeliveryError
from magic_link.services.mail_templates import MailMessage

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"


class MailTransport(Protocol):
    """Sends a rendered MailMessage."""

    name: str

    async def send(self, message: MailMessage) -> bool: ...


class ResendTransport:
    """Resend HTTP API transport.

    Args:
        api_key: Resend API key. Empty means every send reports failure.
        timeout: Per-request timeout in seconds.
    """

    name = "resend"

    def __init__(self, api_key: SecretStr, timeout: float) -> None:
        self._api_key = api_key
        self._timeout = timeout

    async def send(self, message: MailMessage) -> bool:
        key = self._api_key.get_secret_value()
        if not key:
            logger.warning("Resend API key not configured; cannot send")
            return False

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    _RESEND_API_URL,
                    headers={"Authorization": f"Bearer {key}"},
                    json={
                        "from": message.sender.header,
                        "to": [message.to],
                        "subject": message.subject,
                        "html": message.html_body,
                        "text": message.text_body,
                    },
                    timeout=self._timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                self.name, f"API returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(self.name, type(exc).__name__) from exc
        return True


def build_email_message(message: MailMessage, *, plain_text_only: bool) -> EmailMessage:
    """Build the MIME message for SMTP delivery."""
    msg = EmailMessage()
    msg["Subject"] = message.subject
    msg["From"] = message.sender.header
    msg["To"] = message.to
    msg["X-Auth-Magic"] = "1"
    msg.set_content(message.text_body, charset="utf-8")
    if not plain_text_only:
        msg.add_alternative(message.html_body, subtype="html", charset="utf-8")
    return msg


class SmtpTransport:
    """SMTP transport using the standard library client.

    smtplib is blocking, so each send runs in a worker thread.

    Args:
        host: SMTP server host.
        port: SMTP server port.
        timeout: Socket timeout in seconds.
        username: Optional login user.
        password: Optional login password.
        starttls: Upgrade the connection before sending.
        plain_text_only: Send only the text/plain part.
    """

    def __init__(
        self,
        host: str,
        port: int,
        timeout: float,
        *,
        username: str = "",
        password: SecretStr | None = None,
        starttls: bool = False,
        plain_text_only: bool = False,
    ) -> None:
        self.name = "smtp-fallback" if plain_text_only else "smtp"
        self._host = host
        self._port = port
        self._timeout = timeout
        self._username = username
        self._password = password or SecretStr("")
        self._starttls = starttls
        self._plain_text_only = plain_text_only

    async def send(self, message: MailMessage) -> bool:
        email_message = build_email_message(
            message, plain_text_only=self._plain_text_only
        )
        try:
            refused = await asyncio.to_thread(self._send_sync, email_message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(self.name, type(exc).__name__) from exc
        return not refused

    def _send_sync(self, email_message: EmailMessage) -> dict:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._starttls:
                server.starttls()
            if self._username:
                server.login(self._username, self._password.get_secret_value())
            return server.send_message(email_message)
