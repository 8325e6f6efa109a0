from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revealcards.cards.codes import generate_unlock_code, is_valid_email, normalize_email
from revealcards.cards.constants import CARD_STATUS_RESERVED, CARD_STATUS_REVEALED
from revealcards.cards.errors import (
    CardAlreadyRevealedError,
    CardNoLongerAvailableError,
    CardNotFoundError,
    CardReservedByAnotherError,
    InvalidEmailError,
    UnlockAttemptsUnavailableError,
    UnlockCodeDeliveryError,
    UnlockRateLimitedError,
)
from revealcards.cards.rate_limit import UnlockRateLimiter
from revealcards.cards.state_machine import CardStateMachine, is_reservation_expired
from revealcards.cards.types import IssueResult, RateLimitDecision
from revealcards.core.config import Settings, get_settings
from revealcards.core.timeutils import ensure_utc, utcnow
from revealcards.db.repo.cards_repo import CardsRepo
from revealcards.db.repo.events_repo import EventsRepo
from revealcards.services.notifications import (
    NotificationChannel,
    NotificationDeliveryError,
    build_unlock_code_email,
)

logger = structlog.get_logger(__name__)


class UnlockCodeIssuer:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: NotificationChannel,
        settings: Settings | None = None,
        rate_limiter: UnlockRateLimiter | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier
        self._settings = settings or get_settings()
        self._rate_limiter = rate_limiter or UnlockRateLimiter.from_settings(self._settings)

    async def issue(
        self,
        *,
        event_id: int,
        card_number: int,
        email: str,
        guest_name: str | None = None,
        now_utc: datetime | None = None,
    ) -> IssueResult:
        now_utc = now_utc or utcnow()
        normalized_email = normalize_email(email)
        if not is_valid_email(normalized_email):
            raise InvalidEmailError

        denial: RateLimitDecision | None = None
        already_reserved: IssueResult | None = None
        unlock_code = generate_unlock_code(self._settings.unlock_code_length)
        reserved_until = now_utc + self._settings.unlock_reservation_ttl

        async with self._session_factory.begin() as session:
            card = await CardsRepo.get_by_event_and_number(
                session,
                event_id=event_id,
                card_number=card_number,
            )
            if card is None:
                raise CardNotFoundError
            if card.status == CARD_STATUS_REVEALED:
                raise CardAlreadyRevealedError

            if is_reservation_expired(card, now_utc=now_utc):
                if not await CardStateMachine.expire_reservation(session, card, now_utc=now_utc):
                    raise CardNoLongerAvailableError

            if card.status == CARD_STATUS_RESERVED:
                if card.guest_email != normalized_email:
                    raise CardReservedByAnotherError
                already_reserved = IssueResult(
                    event_id=event_id,
                    card_number=card_number,
                    reserved_until=ensure_utc(card.reserved_until),
                    already_reserved=True,
                )
            else:
                decision = await self._rate_limiter.check_and_record(
                    session,
                    email=normalized_email,
                    event_id=event_id,
                    card_number=card_number,
                    now_utc=now_utc,
                )
                if not decision.allowed:
                    denial = decision
                else:
                    await CardStateMachine.reserve(
                        session,
                        card,
                        guest_email=normalized_email,
                        guest_name=guest_name,
                        unlock_code=unlock_code,
                        reserved_until=reserved_until,
                        now_utc=now_utc,
                    )
                    await self._rate_limiter.reset(
                        session,
                        email=normalized_email,
                        event_id=event_id,
                        card_number=card_number,
                        now_utc=now_utc,
                    )
            card_id = card.id
            event = await EventsRepo.get_by_id(session, event_id)
            event_name = event.name if event is not None else None

        if denial is not None and denial.storage_failed:
            raise UnlockAttemptsUnavailableError
        if denial is not None:
            logger.info(
                "unlock_code_issue_rate_limited",
                event_id=event_id,
                card_number=card_number,
            )
            raise UnlockRateLimitedError(
                locked_until=denial.locked_until,
                attempts_remaining=denial.attempts_remaining,
            )
        if already_reserved is not None:
            logger.info(
                "unlock_code_issue_already_reserved",
                event_id=event_id,
                card_number=card_number,
            )
            return already_reserved

        message = build_unlock_code_email(
            to_address=normalized_email,
            code=unlock_code,
            card_number=card_number,
            event_name=event_name,
            guest_name=guest_name,
            valid_hours=self._settings.unlock_reservation_ttl_hours,
        )
        try:
            receipt = await self._notifier.send(message)
            if not receipt.ok:
                raise NotificationDeliveryError
        except NotificationDeliveryError as exc:
            await self._release(card_id=card_id, unlock_code=unlock_code, now_utc=now_utc)
            raise UnlockCodeDeliveryError from exc

        logger.info(
            "unlock_code_issued",
            event_id=event_id,
            card_number=card_number,
            reserved_until=reserved_until.isoformat(),
            message_id=receipt.message_id,
        )
        return IssueResult(
            event_id=event_id,
            card_number=card_number,
            reserved_until=reserved_until,
            already_reserved=False,
            message_id=receipt.message_id,
        )

    async def _release(self, *, card_id: int, unlock_code: str, now_utc: datetime) -> None:
        async with self._session_factory.begin() as session:
            card = await CardsRepo.get_by_id(session, card_id)
            released = card is not None and await CardStateMachine.release_reservation(
                session,
                card,
                unlock_code=unlock_code,
                now_utc=now_utc,
            )
        logger.warning(
            "unlock_code_delivery_failed",
            card_id=card_id,
            reservation_released=released,
        )
