from __future__ import annotations

import logging
from typing import Protocol

import httpx
from rich.console import Console
from rich.panel import Panel

from friendcrm.config import Settings
from friendcrm.errors import DeliveryError

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class Notifier(Protocol):
    async def notify(self, subject: str, message: str) -> bool:
        """Hand a message to the delivery channel. True means it was accepted."""
        ...


class SendGridNotifier:
    """Email delivery through the SendGrid v3 HTTP API."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        to_email: str,
        subject_prefix: str = "CRM: ",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.to_email = to_email
        self.subject_prefix = subject_prefix
        self.timeout = httpx.Timeout(timeout)
        self._transport = transport

    async def notify(self, subject: str, message: str) -> bool:
        if not self.api_key:
            logger.error("SendGrid API key not configured - email disabled")
            return False

        payload = {
            "personalizations": [{"to": [{"email": self.to_email}]}],
            "from": {"email": self.from_email},
            "subject": f"{self.subject_prefix}{subject}",
            "content": [{"type": "text/plain", "value": message}],
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                SENDGRID_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        if response.is_success:
            return True
        raise DeliveryError(f"SendGrid rejected message ({response.status_code}): {response.text[:200]}")


class ConsoleNotifier:
    """Prints reminders to the terminal instead of sending them."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def notify(self, subject: str, message: str) -> bool:
        self.console.print(Panel(message, title=subject, expand=False))
        return True


def build_notifier(settings: Settings) -> Notifier:
    if settings.sendgrid_api_key and settings.to_email:
        return SendGridNotifier(
            api_key=settings.sendgrid_api_key,
            from_email=settings.from_email or settings.to_email,
            to_email=settings.to_email,
            subject_prefix=settings.subject_prefix,
            timeout=settings.notify_timeout,
        )
    logger.warning("SendGrid not configured, reminders will be printed to the console")
    return ConsoleNotifier()
