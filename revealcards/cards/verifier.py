from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revealcards.cards.codes import (
    is_valid_email,
    is_well_formed_unlock_code,
    normalize_email,
    normalize_unlock_code,
    unlock_codes_match,
)
from revealcards.cards.constants import CARD_STATUS_RESERVED, CARD_STATUS_REVEALED
from revealcards.cards.errors import (
    CardAlreadyRevealedError,
    CardNotFoundError,
    CardNotReservedError,
    CardReservedByAnotherError,
    InvalidEmailError,
    InvalidUnlockCodeFormatError,
    ReservationExpiredError,
    UnlockAttemptsUnavailableError,
    UnlockRateLimitedError,
    WrongUnlockCodeError,
)
from revealcards.cards.rate_limit import UnlockRateLimiter
from revealcards.cards.state_machine import CardStateMachine, is_reservation_expired
from revealcards.cards.types import VerifyResult
from revealcards.core.config import Settings, get_settings
from revealcards.core.errors import DomainError
from revealcards.core.timeutils import ensure_utc, utcnow
from revealcards.db.repo.cards_repo import CardsRepo

logger = structlog.get_logger(__name__)


class UnlockVerifier:
    """Checks a submitted unlock code and reveals the card on a match.

    The attempt is recorded, the card checked and the transition applied in
    one transaction. Failures are raised after that transaction commits, so
    every call leaves exactly one recorded attempt behind.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        rate_limiter: UnlockRateLimiter | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._rate_limiter = rate_limiter or UnlockRateLimiter.from_settings(self._settings)

    async def verify(
        self,
        *,
        event_id: int,
        card_number: int,
        email: str,
        code: str,
        now_utc: datetime | None = None,
    ) -> VerifyResult:
        now_utc = now_utc or utcnow()
        normalized_email = normalize_email(email)
        if not is_valid_email(normalized_email):
            raise InvalidEmailError
        normalized_code = normalize_unlock_code(code)
        if not is_well_formed_unlock_code(normalized_code, length=self._settings.unlock_code_length):
            raise InvalidUnlockCodeFormatError

        failure: DomainError | None = None
        result: VerifyResult | None = None

        async with self._session_factory.begin() as session:
            decision = await self._rate_limiter.check_and_record(
                session,
                email=normalized_email,
                event_id=event_id,
                card_number=card_number,
                now_utc=now_utc,
            )
            if decision.storage_failed:
                failure = UnlockAttemptsUnavailableError()
            elif not decision.allowed:
                failure = UnlockRateLimitedError(
                    locked_until=decision.locked_until,
                    attempts_remaining=0,
                )
            else:
                try:
                    result = await self._reveal_if_matching(
                        session,
                        event_id=event_id,
                        card_number=card_number,
                        email=normalized_email,
                        code=normalized_code,
                        attempts_remaining=decision.attempts_remaining,
                        now_utc=now_utc,
                    )
                except DomainError as exc:
                    failure = exc

        if failure is not None:
            logger.info(
                "unlock_verification_rejected",
                event_id=event_id,
                card_number=card_number,
                reason=failure.code,
            )
            raise failure

        assert result is not None
        logger.info("card_revealed_with_code", event_id=event_id, card_number=card_number)
        return result

    async def _reveal_if_matching(
        self,
        session: AsyncSession,
        *,
        event_id: int,
        card_number: int,
        email: str,
        code: str,
        attempts_remaining: int,
        now_utc: datetime,
    ) -> VerifyResult:
        card = await CardsRepo.get_by_event_and_number(
            session,
            event_id=event_id,
            card_number=card_number,
        )
        if card is None:
            raise CardNotFoundError
        if card.status == CARD_STATUS_REVEALED:
            raise CardAlreadyRevealedError
        if card.status != CARD_STATUS_RESERVED:
            raise CardNotReservedError
        if card.guest_email != email:
            raise CardReservedByAnotherError
        if is_reservation_expired(card, now_utc=now_utc):
            raise ReservationExpiredError
        if not unlock_codes_match(code, card.unlock_code):
            raise WrongUnlockCodeError(attempts_remaining=attempts_remaining)

        await CardStateMachine.reveal_with_code(session, card, now_utc=now_utc)
        await self._rate_limiter.reset(
            session,
            email=email,
            event_id=event_id,
            card_number=card_number,
            now_utc=now_utc,
        )
        return VerifyResult(
            event_id=event_id,
            card_number=card_number,
            value=card.value,
            revealed_at=ensure_utc(card.revealed_at) or now_utc,
        )
