"""Outbound email — invitation and password-reset links.

Learn: Delivery is best-effort. Flows call send() only after their state
change is committed, and a failed send is logged, never re-raised: the
token is already stored, and the user can ask for another email.

Two backends:
- LogNotifier: writes the message to the log (development, tests)
- SmtpNotifier: stdlib smtplib, run in a worker thread
"""

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

import structlog

from taskhub.config import Settings

logger = structlog.get_logger()


class Notifier(ABC):
    """Fire-and-forget message delivery."""

    @abstractmethod
    async def send(self, to_address: str, subject: str, body: str) -> None:
        ...


class LogNotifier(Notifier):
    """Logs messages instead of sending them. Keeps an outbox for inspection."""

    def __init__(self):
        self.outbox: list[dict] = []

    async def send(self, to_address: str, subject: str, body: str) -> None:
        self.outbox.append({"to": to_address, "subject": subject, "body": body})
        logger.info("mail.logged", to=to_address, subject=subject)


class SmtpNotifier(Notifier):
    """Sends mail through an SMTP relay."""

    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.starttls = settings.smtp_starttls
        self.sender = settings.mail_from

    async def send(self, to_address: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to_address
        msg["Subject"] = subject
        msg.set_content(body)
        await asyncio.to_thread(self._deliver, msg)
        logger.info("mail.sent", to=to_address, subject=subject)

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            if self.starttls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)


def build_notifier(settings: Settings) -> Notifier:
    if settings.mail_backend == "smtp":
        return SmtpNotifier(settings)
    return LogNotifier()


async def deliver_safely(
    notifier: Notifier, to_address: str, subject: str, body: str
) -> bool:
    """Send and swallow delivery errors. Returns whether the send succeeded."""
    try:
        await notifier.send(to_address, subject, body)
        return True
    except Exception as e:
        logger.warning("mail.delivery_failed", to=to_address, subject=subject, error=str(e))
        return False
