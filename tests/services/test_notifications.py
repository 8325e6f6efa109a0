from __future__ import annotations

import json

import httpx
import pytest

from revealcards.core.config import Settings
from revealcards.services.notifications import (
    EmailMessage,
    LogOnlyEmailChannel,
    NotificationDeliveryError,
    ResendEmailChannel,
    build_notification_channel,
    build_unlock_code_email,
)

MESSAGE = EmailMessage(to_address="ana@example.com", subject="Hello", body_html="<p>hi</p>")


def _channel(handler) -> ResendEmailChannel:
    return ResendEmailChannel(
        api_key="re_test",
        api_url="https://mail.test/emails",
        sender="Cards <noreply@cards.test>",
        transport=httpx.MockTransport(handler),
    )


async def test_resend_channel_posts_message_and_returns_id() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_123"})

    receipt = await _channel(handler).send(MESSAGE)

    assert receipt.ok is True
    assert receipt.message_id == "email_123"
    assert captured["auth"] == "Bearer re_test"
    assert captured["body"] == {
        "from": "Cards <noreply@cards.test>",
        "to": ["ana@example.com"],
        "subject": "Hello",
        "html": "<p>hi</p>",
    }


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"message": "boom"}),
        httpx.Response(200, json={}),
        httpx.Response(200, content=b"not json"),
    ],
)
async def test_resend_channel_failures_raise(response: httpx.Response) -> None:
    with pytest.raises(NotificationDeliveryError):
        await _channel(lambda request: response).send(MESSAGE)


async def test_resend_channel_transport_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(NotificationDeliveryError):
        await _channel(handler).send(MESSAGE)


async def test_log_only_channel_keeps_messages() -> None:
    channel = LogOnlyEmailChannel()

    receipt = await channel.send(MESSAGE)

    assert receipt.message_id == "log-1"
    assert channel.sent == [MESSAGE]


def test_unlock_code_email_escapes_names() -> None:
    message = build_unlock_code_email(
        to_address="ana@example.com",
        code="123456",
        card_number=7,
        event_name="<Party>",
        guest_name="Ana & Bo",
    )

    assert message.subject == "Your unlock code for card #7"
    assert "123456" in message.body_html
    assert "&lt;Party&gt;" in message.body_html
    assert "Ana &amp; Bo" in message.body_html


def test_build_notification_channel() -> None:
    assert isinstance(
        build_notification_channel(Settings(_env_file=None, NOTIFICATION_BACKEND="log")),
        LogOnlyEmailChannel,
    )
    assert isinstance(
        build_notification_channel(Settings(_env_file=None, NOTIFICATION_BACKEND="resend")),
        ResendEmailChannel,
    )
    with pytest.raises(ValueError):
        build_notification_channel(Settings(_env_file=None, NOTIFICATION_BACKEND="pigeon"))
