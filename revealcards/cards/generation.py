from __future__ import annotations

import random
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from revealcards.cards.constants import CARD_STATUS_AVAILABLE
from revealcards.cards.errors import (
    CardsAlreadyGeneratedError,
    EventNotFoundError,
    InvalidCardGenerationError,
)
from revealcards.core.timeutils import utcnow
from revealcards.db.models.cards import Card
from revealcards.db.repo.cards_repo import CardsRepo
from revealcards.db.repo.events_repo import EventsRepo

logger = structlog.get_logger(__name__)


def generate_card_values(
    *,
    count: int,
    min_value: int,
    max_value: int,
    goal_amount: int | None = None,
    rng: random.Random | None = None,
) -> list[int]:
    """Draw ``count`` values in ``[min_value, max_value]``.

    With a goal, the draw is shifted card by card (staying inside the bounds)
    until the values add up to exactly ``goal_amount``.
    """
    if count <= 0 or min_value <= 0 or max_value < min_value:
        raise InvalidCardGenerationError
    if goal_amount is not None and not (count * min_value <= goal_amount <= count * max_value):
        raise InvalidCardGenerationError("Goal cannot be reached with this card count and value range")

    rng = rng or random.SystemRandom()
    values = [rng.randint(min_value, max_value) for _ in range(count)]
    if goal_amount is None:
        return values

    delta = goal_amount - sum(values)
    order = list(range(count))
    rng.shuffle(order)
    for index in order:
        if delta == 0:
            break
        if delta > 0:
            step = min(delta, max_value - values[index])
        else:
            step = max(delta, min_value - values[index])
        values[index] += step
        delta -= step
    return values


async def create_cards_for_event(
    session: AsyncSession,
    *,
    event_id: int,
    count: int,
    min_value: int,
    max_value: int,
    goal_amount: int | None = None,
    now_utc: datetime | None = None,
    rng: random.Random | None = None,
) -> list[Card]:
    now_utc = now_utc or utcnow()
    event = await EventsRepo.get_by_id(session, event_id)
    if event is None:
        raise EventNotFoundError
    if await CardsRepo.list_by_event(session, event_id=event_id):
        raise CardsAlreadyGeneratedError

    values = generate_card_values(
        count=count,
        min_value=min_value,
        max_value=max_value,
        goal_amount=goal_amount,
        rng=rng,
    )
    cards = [
        Card(
            event_id=event_id,
            card_number=number,
            value=value,
            status=CARD_STATUS_AVAILABLE,
            version=0,
            created_at=now_utc,
            updated_at=now_utc,
        )
        for number, value in enumerate(values, start=1)
    ]
    await CardsRepo.create_many(session, cards=cards)
    logger.info(
        "event_cards_created",
        event_id=event_id,
        count=count,
        total_value=sum(values),
        goal_amount=goal_amount,
    )
    return cards
