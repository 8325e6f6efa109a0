from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revealcards.cards.constants import CARD_STATUS_AVAILABLE, CARD_STATUS_REVEALED
from revealcards.cards.errors import EventNotFoundError
from revealcards.cards.state_machine import is_reservation_expired
from revealcards.cards.types import PublicCard
from revealcards.core.timeutils import ensure_utc, utcnow
from revealcards.db.repo.cards_repo import CardsRepo
from revealcards.db.repo.events_repo import EventsRepo


async def list_public_cards(
    session: AsyncSession,
    *,
    event_id: int,
    now_utc: datetime | None = None,
) -> list[PublicCard]:
    # Unlock codes, reserved guest identity and card values never leave this function.
    now_utc = now_utc or utcnow()
    if await EventsRepo.get_by_id(session, event_id) is None:
        raise EventNotFoundError

    public_cards: list[PublicCard] = []
    for card in await CardsRepo.list_by_event(session, event_id=event_id):
        status = card.status
        if is_reservation_expired(card, now_utc=now_utc):
            status = CARD_STATUS_AVAILABLE
        revealed = status == CARD_STATUS_REVEALED
        public_cards.append(
            PublicCard(
                id=card.id,
                card_number=card.card_number,
                status=status,
                guest_name=card.guest_name if revealed else None,
                revealed_at=ensure_utc(card.revealed_at) if revealed else None,
            )
        )
    return public_cards


class PublicCardListing:
    def __init__(self, *, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_for_event(self, event_id: int) -> list[PublicCard]:
        async with self._session_factory() as session:
            return await list_public_cards(session, event_id=event_id)
