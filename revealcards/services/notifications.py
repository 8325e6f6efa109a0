from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Protocol

import httpx
import structlog

from revealcards.core.config import Settings
from revealcards.core.errors import UpstreamError

logger = structlog.get_logger(__name__)


class NotificationDeliveryError(UpstreamError):
    code = "E_NOTIFICATION_DELIVERY_FAILED"
    message = "Notification channel rejected the message"


@dataclass(slots=True)
class NotificationReceipt:
    ok: bool
    message_id: str | None = None


@dataclass(slots=True)
class EmailMessage:
    to_address: str
    subject: str
    body_html: str


class NotificationChannel(Protocol):
    async def send(self, message: EmailMessage) -> NotificationReceipt:
        ...


class ResendEmailChannel:
    """Transactional email through the Resend HTTP API.

    A response without a message id is treated as a hard failure: the
    provider accepted the request but gave no handle for the message.
    """

    def __init__(
        self,
        *,
        api_key: str,
        api_url: str,
        sender: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._sender = sender
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def send(self, message: EmailMessage) -> NotificationReceipt:
        body = {
            "from": self._sender,
            "to": [message.to_address],
            "subject": message.subject,
            "html": message.body_html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(self._api_url, json=body, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("email_delivery_failed", provider="resend", error_type=type(exc).__name__)
            raise NotificationDeliveryError from exc

        message_id = payload.get("id") if isinstance(payload, dict) else None
        if not message_id:
            logger.warning("email_delivery_missing_id", provider="resend")
            raise NotificationDeliveryError
        return NotificationReceipt(ok=True, message_id=str(message_id))


class LogOnlyEmailChannel:
    """Development channel: records the send in the log and keeps the message."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> NotificationReceipt:
        self.sent.append(message)
        logger.info("email_logged", subject=message.subject)
        return NotificationReceipt(ok=True, message_id=f"log-{len(self.sent)}")


def build_unlock_code_email(
    *,
    to_address: str,
    code: str,
    card_number: int,
    event_name: str | None,
    guest_name: str | None = None,
    valid_hours: int = 24,
) -> EmailMessage:
    greeting = f"Hi {escape(guest_name)}," if guest_name else "Hi,"
    event_line = f" for {escape(event_name)}" if event_name else ""
    body_html = (
        f"<p>{greeting}</p>"
        f"<p>Your unlock code for card #{card_number}{event_line} is:</p>"
        f"<p style=\"font-size:28px;font-weight:bold;letter-spacing:6px\">{code}</p>"
        f"<p>The code is valid for {valid_hours} hours. If you did not request it, ignore this email.</p>"
    )
    return EmailMessage(
        to_address=to_address,
        subject=f"Your unlock code for card #{card_number}",
        body_html=body_html,
    )


def build_notification_channel(settings: Settings) -> NotificationChannel:
    backend = settings.notification_backend.strip().lower()
    if backend == "resend":
        return ResendEmailChannel(
            api_key=settings.resend_api_key,
            api_url=settings.resend_api_url,
            sender=settings.email_sender,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    if backend == "log":
        return LogOnlyEmailChannel()
    raise ValueError(f"unknown notification backend: {settings.notification_backend}")
