from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from revealcards.db.models.unlock_attempts import UnlockAttempt


class UnlockAttemptsRepo:
    @staticmethod
    async def get_for_update(
        session: AsyncSession,
        *,
        email: str,
        event_id: int,
        card_number: int,
    ) -> UnlockAttempt | None:
        stmt = (
            select(UnlockAttempt)
            .where(
                UnlockAttempt.email == email,
                UnlockAttempt.event_id == event_id,
                UnlockAttempt.card_number == card_number,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create_for_update(
        session: AsyncSession,
        *,
        email: str,
        event_id: int,
        card_number: int,
        now_utc: datetime,
    ) -> UnlockAttempt:
        existing = await UnlockAttemptsRepo.get_for_update(
            session,
            email=email,
            event_id=event_id,
            card_number=card_number,
        )
        if existing is not None:
            return existing

        attempt = UnlockAttempt(
            email=email,
            event_id=event_id,
            card_number=card_number,
            attempts=0,
            window_started_at=now_utc,
            locked_until=None,
            created_at=now_utc,
            updated_at=now_utc,
        )
        try:
            async with session.begin_nested():
                session.add(attempt)
                await session.flush()
        except IntegrityError:
            # A concurrent first attempt created the row; lock that one instead.
            existing = await UnlockAttemptsRepo.get_for_update(
                session,
                email=email,
                event_id=event_id,
                card_number=card_number,
            )
            if existing is None:
                raise
            return existing

        return attempt
