"""Card lifecycle transitions.

All writes to ``Card.status`` go through this module. Each transition is a
compare-and-set on ``(id, status, version)``: a write that matches no row
means another request changed the card first, and the caller gets a
conflict instead of overwriting that change.

    AVAILABLE -> RESERVED      reservation (unlock code or checkout)
    RESERVED  -> REVEALED      verified code or confirmed payment
    RESERVED  -> AVAILABLE     expiry or rollback of a failed delivery
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from revealcards.cards.codes import generate_unlock_code
from revealcards.cards.constants import (
    CARD_STATUS_AVAILABLE,
    CARD_STATUS_RESERVED,
    CARD_STATUS_REVEALED,
)
from revealcards.cards.errors import (
    CardAlreadyRevealedError,
    CardNoLongerAvailableError,
    CardTransitionNotAllowedError,
)
from revealcards.core.timeutils import ensure_utc
from revealcards.db.models.cards import Card
from revealcards.db.repo.cards_repo import CardsRepo

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    CARD_STATUS_AVAILABLE: frozenset({CARD_STATUS_RESERVED}),
    CARD_STATUS_RESERVED: frozenset({CARD_STATUS_AVAILABLE, CARD_STATUS_REVEALED}),
    CARD_STATUS_REVEALED: frozenset(),
}

_CLEARED_RESERVATION: dict[str, object] = {
    "unlock_code": None,
    "guest_email": None,
    "guest_name": None,
    "reserved_until": None,
}


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def is_reservation_expired(card: Card, *, now_utc: datetime) -> bool:
    if card.status != CARD_STATUS_RESERVED:
        return False
    reserved_until = ensure_utc(card.reserved_until)
    return reserved_until is None or reserved_until <= now_utc


class CardStateMachine:
    @staticmethod
    async def _compare_and_set(
        session: AsyncSession,
        card: Card,
        *,
        values: Mapping[str, object],
        now_utc: datetime,
    ) -> bool:
        applied = await CardsRepo.compare_and_set(
            session,
            card_id=card.id,
            expected_status=card.status,
            expected_version=card.version,
            values=values,
            now_utc=now_utc,
        )
        if applied:
            await session.refresh(card)
        return applied

    @staticmethod
    async def _transition(
        session: AsyncSession,
        card: Card,
        *,
        to_status: str,
        values: Mapping[str, object],
        now_utc: datetime,
    ) -> bool:
        if not can_transition(card.status, to_status):
            raise CardTransitionNotAllowedError
        from_status = card.status
        applied = await CardStateMachine._compare_and_set(
            session,
            card,
            values={"status": to_status, **values},
            now_utc=now_utc,
        )
        if applied:
            logger.info(
                "card_status_changed",
                card_id=card.id,
                event_id=card.event_id,
                card_number=card.card_number,
                from_status=from_status,
                to_status=to_status,
                version=card.version,
            )
        return applied

    @staticmethod
    async def reserve(
        session: AsyncSession,
        card: Card,
        *,
        guest_email: str,
        guest_name: str | None,
        unlock_code: str,
        reserved_until: datetime,
        now_utc: datetime,
    ) -> None:
        if card.status == CARD_STATUS_REVEALED:
            raise CardAlreadyRevealedError
        if card.status != CARD_STATUS_AVAILABLE:
            raise CardNoLongerAvailableError

        applied = await CardStateMachine._transition(
            session,
            card,
            to_status=CARD_STATUS_RESERVED,
            values={
                "unlock_code": unlock_code,
                "guest_email": guest_email,
                "guest_name": guest_name,
                "reserved_until": reserved_until,
            },
            now_utc=now_utc,
        )
        if not applied:
            raise CardNoLongerAvailableError

    @staticmethod
    async def renew_reservation(
        session: AsyncSession,
        card: Card,
        *,
        reserved_until: datetime,
        guest_name: str | None,
        now_utc: datetime,
    ) -> None:
        if card.status != CARD_STATUS_RESERVED:
            raise CardNoLongerAvailableError

        values: dict[str, object] = {"reserved_until": reserved_until}
        if guest_name:
            values["guest_name"] = guest_name
        applied = await CardStateMachine._compare_and_set(
            session,
            card,
            values=values,
            now_utc=now_utc,
        )
        if not applied:
            raise CardNoLongerAvailableError

    @staticmethod
    async def expire_reservation(
        session: AsyncSession,
        card: Card,
        *,
        now_utc: datetime,
    ) -> bool:
        """Return the card to AVAILABLE when its reservation has lapsed.

        Returns ``True`` only when this call performed the rollback. A lost
        race returns ``False``; callers re-read the card and decide again.
        """
        if not is_reservation_expired(card, now_utc=now_utc):
            return False

        applied = await CardStateMachine._transition(
            session,
            card,
            to_status=CARD_STATUS_AVAILABLE,
            values=_CLEARED_RESERVATION,
            now_utc=now_utc,
        )
        if applied:
            logger.info(
                "card_reservation_expired",
                card_id=card.id,
                event_id=card.event_id,
                card_number=card.card_number,
            )
        return applied

    @staticmethod
    async def release_reservation(
        session: AsyncSession,
        card: Card,
        *,
        unlock_code: str,
        now_utc: datetime,
    ) -> bool:
        # Only the reservation carrying this code is released.
        if card.status != CARD_STATUS_RESERVED or card.unlock_code != unlock_code:
            return False

        return await CardStateMachine._transition(
            session,
            card,
            to_status=CARD_STATUS_AVAILABLE,
            values=_CLEARED_RESERVATION,
            now_utc=now_utc,
        )

    @staticmethod
    async def reveal_with_code(
        session: AsyncSession,
        card: Card,
        *,
        now_utc: datetime,
    ) -> None:
        if card.status == CARD_STATUS_REVEALED:
            raise CardAlreadyRevealedError

        applied = await CardStateMachine._transition(
            session,
            card,
            to_status=CARD_STATUS_REVEALED,
            values={
                "unlock_code": None,
                "reserved_until": None,
                "revealed_at": now_utc,
            },
            now_utc=now_utc,
        )
        if not applied:
            raise CardAlreadyRevealedError

    @staticmethod
    async def reveal_for_payment(
        session: AsyncSession,
        card: Card,
        *,
        guest_email: str,
        guest_name: str | None,
        now_utc: datetime,
    ) -> bool:
        """Reveal a card whose payment the gateway confirmed.

        A card that is already revealed is left untouched and ``False`` is
        returned. An available card is reserved for the payer first, inside
        the caller's transaction.
        """
        if card.status == CARD_STATUS_REVEALED:
            return False

        if card.status == CARD_STATUS_AVAILABLE:
            await CardStateMachine.reserve(
                session,
                card,
                guest_email=guest_email,
                guest_name=guest_name,
                unlock_code=generate_unlock_code(),
                reserved_until=now_utc,
                now_utc=now_utc,
            )

        applied = await CardStateMachine._transition(
            session,
            card,
            to_status=CARD_STATUS_REVEALED,
            values={
                "unlock_code": None,
                "reserved_until": None,
                "revealed_at": now_utc,
                "guest_email": guest_email,
                "guest_name": guest_name or card.guest_name,
            },
            now_utc=now_utc,
        )
        if not applied:
            raise CardNoLongerAvailableError
        return True

