from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from revealcards.db.models.events import Event


class EventsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, event_id: int) -> Event | None:
        return await session.get(Event, event_id)

    @staticmethod
    async def create(session: AsyncSession, *, event: Event) -> Event:
        session.add(event)
        await session.flush()
        return event
