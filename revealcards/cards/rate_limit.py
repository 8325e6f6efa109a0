from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revealcards.cards.types import RateLimitDecision
from revealcards.core.config import Settings
from revealcards.core.timeutils import ensure_utc
from revealcards.db.repo.unlock_attempts_repo import UnlockAttemptsRepo

logger = structlog.get_logger(__name__)


class UnlockRateLimiter:
    """Per (email, event, card) attempt ledger.

    The ledger row is locked for the duration of the caller's transaction,
    so concurrent attempts for one key are counted one after another.
    Storage failures deny the attempt.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        attempt_window: timedelta = timedelta(minutes=60),
        lockout: timedelta = timedelta(minutes=15),
    ) -> None:
        self.max_attempts = max_attempts
        self.attempt_window = attempt_window
        self.lockout = lockout

    @classmethod
    def from_settings(cls, settings: Settings) -> UnlockRateLimiter:
        return cls(
            max_attempts=settings.unlock_max_attempts,
            attempt_window=settings.unlock_attempt_window,
            lockout=settings.unlock_lockout,
        )

    async def check_and_record(
        self,
        session: AsyncSession,
        *,
        email: str,
        event_id: int,
        card_number: int,
        now_utc: datetime,
    ) -> RateLimitDecision:
        try:
            async with session.begin_nested():
                return await self._check_and_record(
                    session,
                    email=email,
                    event_id=event_id,
                    card_number=card_number,
                    now_utc=now_utc,
                )
        except SQLAlchemyError:
            logger.exception(
                "unlock_rate_limit_storage_failed",
                event_id=event_id,
                card_number=card_number,
            )
            return RateLimitDecision(
                allowed=False,
                attempts_remaining=0,
                locked_until=None,
                storage_failed=True,
            )

    async def _check_and_record(
        self,
        session: AsyncSession,
        *,
        email: str,
        event_id: int,
        card_number: int,
        now_utc: datetime,
    ) -> RateLimitDecision:
        attempt = await UnlockAttemptsRepo.get_or_create_for_update(
            session,
            email=email,
            event_id=event_id,
            card_number=card_number,
            now_utc=now_utc,
        )

        locked_until = ensure_utc(attempt.locked_until)
        if locked_until is not None and locked_until > now_utc:
            return RateLimitDecision(allowed=False, attempts_remaining=0, locked_until=locked_until)

        window_started_at = ensure_utc(attempt.window_started_at)
        if locked_until is not None or window_started_at + self.attempt_window <= now_utc:
            attempt.attempts = 0
            attempt.window_started_at = now_utc
            attempt.locked_until = None

        attempt.attempts += 1
        attempt.updated_at = now_utc

        if attempt.attempts > self.max_attempts:
            attempt.locked_until = now_utc + self.lockout
            await session.flush()
            logger.warning(
                "unlock_attempts_locked",
                event_id=event_id,
                card_number=card_number,
                attempts=attempt.attempts,
                locked_until=attempt.locked_until.isoformat(),
            )
            return RateLimitDecision(
                allowed=False,
                attempts_remaining=0,
                locked_until=attempt.locked_until,
            )

        await session.flush()
        return RateLimitDecision(
            allowed=True,
            attempts_remaining=self.max_attempts - attempt.attempts,
            locked_until=None,
        )

    async def reset(
        self,
        session: AsyncSession,
        *,
        email: str,
        event_id: int,
        card_number: int,
        now_utc: datetime,
    ) -> None:
        attempt = await UnlockAttemptsRepo.get_for_update(
            session,
            email=email,
            event_id=event_id,
            card_number=card_number,
        )
        if attempt is None:
            return
        attempt.attempts = 0
        attempt.window_started_at = now_utc
        attempt.locked_until = None
        attempt.updated_at = now_utc
        await session.flush()
