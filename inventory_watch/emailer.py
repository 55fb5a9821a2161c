"""Email transport via SMTP.

Sends one message per call and hands back the Message-ID it was sent
with, so callers can thread follow-ups onto it.  Supports STARTTLS (587)
or SSL (465).
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional

from . import config

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when the SMTP server refuses auth or delivery."""


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    text: str
    html: str
    thread_reference: Optional[str] = None


class SmtpTransport:
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        *,
        from_address: Optional[str] = None,
        from_name: str = "",
        use_tls: bool = True,
        timeout: float = 20.0,
    ):
        self.host = host
        self.port = int(port)
        self.username = username
        self.password = password
        self.from_address = from_address or username
        self.from_name = from_name
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, email: OutgoingEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = email.subject
        msg["From"] = formataddr((self.from_name, self.from_address)) if self.from_name else self.from_address
        msg["To"] = email.to
        msg["Message-ID"] = make_msgid(domain=self.from_address.rpartition("@")[2] or None)
        if email.thread_reference:
            msg["In-Reply-To"] = email.thread_reference
            msg["References"] = email.thread_reference
        msg.set_content(email.text)
        msg.add_alternative(email.html, subtype="html")
        return msg

    def send(self, email: OutgoingEmail) -> str:
        """Send `email` and return its Message-ID. Raises TransportError."""
        msg = self.build_message(email)
        try:
            if self.use_tls and self.port == 587:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as s:
                    s.ehlo()
                    s.starttls(context=ssl.create_default_context())
                    s.login(self.username, self.password)
                    s.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.host, self.port, context=ssl.create_default_context(), timeout=self.timeout) as s:
                    s.login(self.username, self.password)
                    s.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"Failed to send to {email.to}: {e}") from e
        logger.info("Email sent to %s (subject=%s)", email.to, email.subject)
        return msg["Message-ID"]


def transport_from_config() -> SmtpTransport:
    return SmtpTransport(
        config.EMAIL_SMTP_HOST,
        config.EMAIL_SMTP_PORT,
        config.GMAIL_SENDER or "",
        config.GMAIL_APP_PASSWORD or "",
        from_address=config.EMAIL_FROM,
        from_name=config.EMAIL_FROM_NAME,
        use_tls=config.EMAIL_USE_TLS,
        timeout=config.EMAIL_TIMEOUT_SECONDS,
    )


__all__ = ["OutgoingEmail", "SmtpTransport", "TransportError", "transport_from_config"]
