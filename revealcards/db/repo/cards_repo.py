from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from revealcards.db.models.cards import Card


class CardsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, card_id: int) -> Card | None:
        stmt = select(Card).where(Card.id == card_id).execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_event_and_number(
        session: AsyncSession,
        *,
        event_id: int,
        card_number: int,
    ) -> Card | None:
        stmt = (
            select(Card)
            .where(Card.event_id == event_id, Card.card_number == card_number)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_event(session: AsyncSession, *, event_id: int) -> list[Card]:
        stmt = select(Card).where(Card.event_id == event_id).order_by(Card.card_number.asc())
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def create_many(session: AsyncSession, *, cards: Sequence[Card]) -> list[Card]:
        session.add_all(cards)
        await session.flush()
        return list(cards)

    @staticmethod
    async def compare_and_set(
        session: AsyncSession,
        *,
        card_id: int,
        expected_status: str,
        expected_version: int,
        values: Mapping[str, object],
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(Card)
            .where(
                Card.id == card_id,
                Card.status == expected_status,
                Card.version == expected_version,
            )
            .values(**values, version=expected_version + 1, updated_at=now_utc)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0) == 1
