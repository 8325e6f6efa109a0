from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revealcards.db.models.cards import Card
from revealcards.db.models.events import Event
from revealcards.db.models.payments import Payment
from revealcards.db.models.unlock_attempts import UnlockAttempt
from revealcards.services.notifications import (
    EmailMessage,
    NotificationDeliveryError,
    NotificationReceipt,
)
from revealcards.services.payment_gateway import (
    GatewaySession,
    GatewaySessionStatus,
    PaymentGatewayError,
)

UTC = timezone.utc
NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


class FakeNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> NotificationReceipt:
        if self.fail:
            raise NotificationDeliveryError
        self.sent.append(message)
        return NotificationReceipt(ok=True, message_id=f"msg-{len(self.sent)}")


class FakeGateway:
    def __init__(self) -> None:
        self.fail_create = False
        self.failing_session_ids: set[str] = set()
        self.created: list[dict[str, object]] = []
        self.status_calls: list[str] = []
        self._statuses: dict[str, GatewaySessionStatus] = {}

    async def create_session(self, **kwargs: object) -> GatewaySession:
        if self.fail_create:
            raise PaymentGatewayError
        self.created.append(kwargs)
        session_id = f"cs_test_{len(self.created)}"
        return GatewaySession(session_id=session_id, url=f"https://checkout.test/{session_id}")

    def mark_paid(self, session_id: str, *, metadata: dict[str, str] | None = None) -> None:
        self._statuses[session_id] = GatewaySessionStatus(
            session_id=session_id,
            paid=True,
            payment_status="paid",
            metadata=metadata or {},
        )

    async def get_session_status(self, session_id: str) -> GatewaySessionStatus:
        self.status_calls.append(session_id)
        if session_id in self.failing_session_ids:
            raise PaymentGatewayError
        return self._statuses.get(
            session_id,
            GatewaySessionStatus(session_id=session_id, paid=False, payment_status="unpaid"),
        )


async def create_event_with_cards(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    values: list[int],
    slug: str = "spring-party",
    payout_account_id: str | None = None,
) -> int:
    async with session_factory.begin() as session:
        event = Event(
            slug=slug,
            name="Spring Party",
            num_cards=len(values),
            min_value=min(values),
            max_value=max(values),
            goal_amount=None,
            payout_account_id=payout_account_id,
            created_at=NOW,
        )
        session.add(event)
        await session.flush()
        for number, value in enumerate(values, start=1):
            session.add(
                Card(
                    event_id=event.id,
                    card_number=number,
                    value=value,
                    status="AVAILABLE",
                    version=0,
                    created_at=NOW,
                    updated_at=NOW,
                )
            )
        return event.id


async def load_card(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    event_id: int,
    card_number: int,
) -> Card:
    async with session_factory() as session:
        result = await session.execute(
            select(Card).where(Card.event_id == event_id, Card.card_number == card_number)
        )
        return result.scalar_one()


async def load_attempt(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    email: str,
    event_id: int,
    card_number: int,
) -> UnlockAttempt | None:
    async with session_factory() as session:
        result = await session.execute(
            select(UnlockAttempt).where(
                UnlockAttempt.email == email,
                UnlockAttempt.event_id == event_id,
                UnlockAttempt.card_number == card_number,
            )
        )
        return result.scalar_one_or_none()


async def load_payments(session_factory: async_sessionmaker[AsyncSession]) -> list[Payment]:
    async with session_factory() as session:
        result = await session.execute(select(Payment).order_by(Payment.id))
        return list(result.scalars().all())
