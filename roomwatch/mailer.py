"""Email delivery of the listing digest and the error digest."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from html import escape
from typing import Iterable, Optional, Protocol

from .config import Settings
from .digest import NotificationDigest
from .errors import ErrorBuffer, ErrorEntry

logger = logging.getLogger(__name__)

LISTINGS_SUBJECT = "🏠 New Listings Found!"
ERRORS_SUBJECT = "🔧 Error Report"


class MailTransport(Protocol):
    def send(self, subject: str, html: str) -> str:
        """Send *html* and return the message id."""


class SmtpTransport:
    """Sends HTML mail to one subscriber over SMTP.

    Port 465 uses implicit TLS; any other port upgrades with STARTTLS when
    the server offers it.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: Optional[str],
        password: Optional[str],
        sender: str,
        recipient: str,
        *,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.recipient = recipient
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["SmtpTransport"]:
        """Return a transport, or ``None`` when the mail settings are incomplete."""

        sender = settings.email_from or settings.email_user
        missing = [
            name
            for name, value in (
                ("EMAIL_HOST", settings.email_host),
                ("EMAIL_FROM", sender),
                ("SUBSCRIBER_EMAIL", settings.subscriber_email),
            )
            if not value
        ]
        if missing:
            logger.warning("Email delivery disabled; missing %s", ", ".join(missing))
            return None
        return cls(
            settings.email_host,
            settings.email_port,
            settings.email_user,
            settings.email_pass,
            sender,
            settings.subscriber_email,
        )

    def _open(self) -> smtplib.SMTP:
        if self.port == 465:
            conn: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            conn = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            conn.ehlo()
            if conn.has_extn("starttls"):
                conn.starttls()
                conn.ehlo()
        if self.user and self.password:
            conn.login(self.user, self.password)
        return conn

    def send(self, subject: str, html: str) -> str:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = self.recipient
        msg["Message-ID"] = make_msgid()
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")

        with self._open() as conn:
            conn.send_message(msg)
        return msg["Message-ID"]


def render_error_report(entries: Iterable[ErrorEntry]) -> str:
    blocks = []
    for entry in entries:
        stack = f"<pre>{escape(entry.stack)}</pre>" if entry.stack else ""
        blocks.append(
            '<div style="border-bottom: 1px solid #ddd; padding: 8px 0;">'
            f"<p><strong>{escape(entry.timestamp)}</strong> "
            f"{escape(entry.method)} {escape(entry.path)}</p>"
            f"<p>{escape(entry.message).replace(chr(10), '<br>')}</p>"
            f"{stack}</div>"
        )
    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"><title>Error Report</title></head>"
        '<body><div style="font-family: monospace; font-size: 13px;">'
        + "\n".join(blocks)
        + "</div></body></html>"
    )


class Mailer:
    """Drains the notification digest and the error buffer into email."""

    def __init__(
        self,
        transport: Optional[MailTransport],
        digest: NotificationDigest,
        errors: ErrorBuffer,
        *,
        error_digest_enabled: bool = False,
    ) -> None:
        self.transport = transport
        self.digest = digest
        self.errors = errors
        self.error_digest_enabled = error_digest_enabled

    def send_notification_digest(self) -> Optional[str]:
        """Mail the pending digest and clear it once the send succeeded.

        A failed send leaves the digest in place for the next attempt.
        """

        if self.transport is None:
            logger.info("No mail transport configured; digest kept at %s", self.digest.path)
            return None
        html = self.digest.render()
        if html is None:
            logger.info("No new listings to notify.")
            return None

        try:
            message_id = self.transport.send(LISTINGS_SUBJECT, html)
        except Exception as exc:
            self.errors.capture(logger, "Mailer", exc, "Error sending listing digest")
            return None

        self.digest.clear()
        logger.info("Listing digest sent: %s", message_id)
        return message_id

    def send_error_digest(self) -> Optional[str]:
        """Mail buffered errors; entries are flushed whether or not the send works."""

        if not self.error_digest_enabled or not self.errors.has_pending():
            return None
        entries = self.errors.flush()
        if self.transport is None:
            logger.info("No mail transport configured; dropped %d buffered error(s)", len(entries))
            return None

        try:
            message_id = self.transport.send(ERRORS_SUBJECT, render_error_report(entries))
        except Exception as exc:
            # Only the failure itself is buffered; the flushed entries are gone.
            self.errors.capture(logger, "Mailer", exc, "Error sending error digest")
            return None
        logger.info("Error digest with %d entr(ies) sent: %s", len(entries), message_id)
        return message_id


__all__ = [
    "LISTINGS_SUBJECT",
    "ERRORS_SUBJECT",
    "MailTransport",
    "SmtpTransport",
    "Mailer",
    "render_error_report",
]
