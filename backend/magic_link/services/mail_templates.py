"""Email content for magic links: templates, sender identity, plain text.

Everything here is pure. Both transports send the MailMessage produced by
render_message(), so switching to the fallback transport never changes
what the recipient reads.

Templates use three literal placeholders, replaced in a single pass with
no escaping:

- ``[user:name]``: account display name
- ``[site:name]``: configured site name
- ``[magic_link:url]``: the redemption URL
"""

import html
import re
from dataclasses import dataclass

from magic_link.services.accounts import Account

DEFAULT_SUBJECT_TEMPLATE = "Your magic link for [site:name]"

DEFAULT_BODY_TEMPLATE = """<p>Hello [user:name],</p>

<p>Use this one-time link to log in to [site:name]:</p>

<p><a href="[magic_link:url]">[magic_link:url]</a></p>

<p>This link works once and may expire soon.</p>

<p>If you did not request this, you can ignore this email.</p>

<p>— [site:name]</p>"""

DEFAULT_SITE_NAME = "Magic Link"
DEFAULT_FROM_EMAIL = "noreply@localhost"

_PLACEHOLDER_RE = re.compile(r"\[(?:user:name|site:name|magic_link:url)\]")

_BREAK_RE = re.compile(r"<br\s*/?>|</?p(?:\s[^>]*)?>|</div\s*>", re.IGNORECASE)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
# A tag starts with a letter, "/", "!" or "?"; "a < b" is text
_TAG_RE = re.compile(r"<[A-Za-z/!?][^<>]*>")
_HSPACE_RE = re.compile(r"[ \t\f\v\xa0]+")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class EmailTemplate:
    """Subject and HTML body with placeholders."""

    subject_template: str
    body_template_html: str


@dataclass(frozen=True)
class SenderIdentity:
    """From header parts."""

    from_name: str
    from_email: str

    @property
    def header(self) -> str:
        return f"{self.from_name} <{self.from_email}>"


@dataclass(frozen=True)
class MailMessage:
    """A fully rendered email, ready for any transport.

    Attributes:
        to: Recipient address.
        subject: Single-line subject.
        html_body: Rendered HTML body.
        text_body: Plain-text version of html_body.
        sender: From identity.
    """

    to: str
    subject: str
    html_body: str
    text_body: str
    sender: SenderIdentity


def resolve_email_template(subject_override: str, body_override: str) -> EmailTemplate:
    """Configured templates, falling back to the built-in defaults."""
    return EmailTemplate(
        subject_template=subject_override.strip() or DEFAULT_SUBJECT_TEMPLATE,
        body_template_html=body_override.strip() or DEFAULT_BODY_TEMPLATE,
    )


def resolve_sender_identity(
    *,
    configured_name: str,
    configured_email: str,
    site_name: str,
    site_mail: str,
    admin_email: str | None,
) -> SenderIdentity:
    """Resolve the From identity through its fallback chain.

    Name: configured name, then site name, then the built-in default.
    Email: configured address, then site mail, then the admin account's
    address, then noreply@localhost.
    """
    from_name = configured_name.strip() or site_name.strip() or DEFAULT_SITE_NAME
    from_email = (
        configured_email.strip()
        or site_mail.strip()
        or (admin_email or "").strip()
        or DEFAULT_FROM_EMAIL
    )
    return SenderIdentity(from_name=from_name, from_email=from_email)


def replace_tokens(template: str, *, user_name: str, site_name: str, url: str) -> str:
    """Substitute the three placeholders in one literal pass."""
    values = {
        "[user:name]": user_name,
        "[site:name]": site_name,
        "[magic_link:url]": url,
    }
    return _PLACEHOLDER_RE.sub(lambda match: values[match.group(0)], template)


def _strip_markup(markup: str) -> str:
    # Removing one tag can join its neighbours into a new one
    text = markup
    while True:
        stripped = _COMMENT_RE.sub("", text)
        stripped = _BREAK_RE.sub("\n", stripped)
        stripped = _TAG_RE.sub("", stripped)
        if stripped == text:
            return stripped
        text = stripped


def html_to_plain_text(markup: str) -> str:
    """Convert an HTML email body to plain text.

    Paragraph, div and line-break tags become newlines and remaining tags
    are stripped; only then are entities decoded, once, so escaped text
    such as ``a &lt; b`` survives as ``a < b``. Horizontal whitespace runs
    collapse to one space, lines are trimmed, blank-line runs collapse to
    a single blank line and the result is trimmed.

    Reapplying it to its own output changes nothing unless the decoded
    text itself looks like a tag or an entity (``&lt;b&gt;``).
    """
    text = html.unescape(_strip_markup(markup))
    # Entities such as &#13; decode to bare carriage returns
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HSPACE_RE.sub(" ", text)
    text = "\n".join(line.strip(" ") for line in text.split("\n"))
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def render_message(
    template: EmailTemplate,
    *,
    account: Account,
    url: str,
    site_name: str,
    sender: SenderIdentity,
) -> MailMessage:
    """Render subject and bodies for one recipient."""
    site = site_name.strip() or DEFAULT_SITE_NAME
    user_name = account.display_name
    subject = replace_tokens(
        template.subject_template, user_name=user_name, site_name=site, url=url
    )
    body_html = replace_tokens(
        template.body_template_html, user_name=user_name, site_name=site, url=url
    )
    return MailMessage(
        to=account.email,
        # Header values must be a single line
        subject=" ".join(subject.split()),
        html_body=body_html,
        text_body=html_to_plain_text(body_html),
        sender=sender,
    )
