from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from rental.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    text: str
    html: Optional[str] = None


class Mailer(ABC):
    """Outbound email transport."""

    @abstractmethod
    async def send(self, email: OutgoingEmail) -> None:
        ...


class LoggingMailer(Mailer):
    """Logs emails instead of sending them (development / mail disabled)."""

    async def send(self, email: OutgoingEmail) -> None:
        logger.info("[mail] to=%s subject=%r\n%s", email.to, email.subject, email.text)


class SmtpMailer(Mailer):
    """Async SMTP client; each send opens its own bounded connection."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username or None
        self.password = password or None
        self.use_tls = use_tls
        self.timeout = timeout

    def _build(self, email: OutgoingEmail) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = email.to
        message["Subject"] = email.subject
        message.set_content(email.text)
        if email.html:
            message.add_alternative(email.html, subtype="html")
        return message

    async def send(self, email: OutgoingEmail) -> None:
        await aiosmtplib.send(
            self._build(email),
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            use_tls=self.use_tls,
            timeout=self.timeout,
        )


def build_mailer(settings: Settings) -> Mailer:
    """SMTP when mail is enabled and a host is configured, logging otherwise."""
    if not settings.MAIL_ENABLED or not settings.SMTP_HOST:
        return LoggingMailer()
    return SmtpMailer(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        sender=settings.CONTACT_EMAIL,
        username=settings.SMTP_USERNAME,
        password=settings.EMAIL_PASSWORD,
        use_tls=settings.SMTP_TLS,
        timeout=settings.MAIL_TIMEOUT_SECONDS,
    )
