from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revealcards.cards.codes import generate_unlock_code, is_valid_email, normalize_email
from revealcards.cards.constants import (
    CARD_STATUS_AVAILABLE,
    CARD_STATUS_RESERVED,
    CARD_STATUS_REVEALED,
)
from revealcards.cards.errors import (
    CardAlreadyRevealedError,
    CardNoLongerAvailableError,
    CardNotFoundError,
    CardReservedByAnotherError,
    EventNotFoundError,
    InvalidEmailError,
)
from revealcards.cards.state_machine import CardStateMachine, is_reservation_expired
from revealcards.core.config import Settings, get_settings
from revealcards.core.timeutils import ensure_utc, utcnow
from revealcards.db.models.cards import Card
from revealcards.db.models.payments import Payment
from revealcards.db.repo.cards_repo import CardsRepo
from revealcards.db.repo.events_repo import EventsRepo
from revealcards.db.repo.payments_repo import PaymentsRepo
from revealcards.payments.constants import PAYMENT_STATUS_PENDING
from revealcards.payments.errors import CheckoutGatewayError, InvalidGuestNameError
from revealcards.payments.fees import compute_checkout_amounts
from revealcards.payments.types import CheckoutResult
from revealcards.services.payment_gateway import PaymentGateway, PaymentGatewayError, PayoutSplit

logger = structlog.get_logger(__name__)


class CheckoutInitiator:
    """Opens a payment session for a card.

    The card is held for the payer before the gateway is called. The local
    Payment row is written afterwards and is best effort: reconciliation
    against the gateway decides the final state.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._gateway = gateway
        self._settings = settings or get_settings()

    async def start_checkout(
        self,
        *,
        card_id: int,
        event_id: int,
        guest_name: str,
        guest_email: str,
        now_utc: datetime | None = None,
    ) -> CheckoutResult:
        now_utc = now_utc or utcnow()
        normalized_email = normalize_email(guest_email)
        if not is_valid_email(normalized_email):
            raise InvalidEmailError
        guest_name = guest_name.strip()
        if not guest_name:
            raise InvalidGuestNameError

        async with self._session_factory.begin() as session:
            card = await CardsRepo.get_by_id(session, card_id)
            if card is None or card.event_id != event_id:
                raise CardNotFoundError
            event = await EventsRepo.get_by_id(session, event_id)
            if event is None:
                raise EventNotFoundError

            hold_until = await self._hold_card(
                session,
                card=card,
                guest_email=normalized_email,
                guest_name=guest_name,
                now_utc=now_utc,
            )
            amounts = compute_checkout_amounts(
                card_value=card.value,
                platform_fee=self._settings.platform_fee_amount,
            )
            card_number = card.card_number
            event_slug = event.slug
            event_name = event.name
            payout_account_id = event.payout_account_id

        metadata = {
            "card_id": str(card_id),
            "event_id": str(event_id),
            "card_number": str(card_number),
            "amount": str(amounts.total_amount),
            "card_value": str(amounts.card_value),
            "platform_fee": str(amounts.platform_fee),
            "guest_email": normalized_email,
            "guest_name": guest_name,
        }
        payout = None
        if payout_account_id:
            payout = PayoutSplit(
                destination_account=payout_account_id,
                application_fee_amount=amounts.platform_fee,
            )

        base_url = self._settings.public_base_url.rstrip("/")
        try:
            gateway_session = await self._gateway.create_session(
                amount=amounts.total_amount,
                currency=self._settings.payment_currency,
                description=f"{event_name} - card #{card_number}",
                customer_email=normalized_email,
                metadata=metadata,
                success_url=f"{base_url}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/events/{event_slug}",
                payout=payout,
                expires_at=hold_until,
            )
        except PaymentGatewayError as exc:
            logger.warning(
                "checkout_session_create_failed",
                card_id=card_id,
                event_id=event_id,
            )
            raise CheckoutGatewayError from exc

        payment_id: int | None = None
        try:
            async with self._session_factory.begin() as session:
                payment = await PaymentsRepo.create(
                    session,
                    payment=Payment(
                        card_id=card_id,
                        event_id=event_id,
                        amount=amounts.card_value,
                        transaction_fee=amounts.platform_fee,
                        currency=self._settings.payment_currency,
                        guest_email=normalized_email,
                        guest_name=guest_name,
                        status=PAYMENT_STATUS_PENDING,
                        stripe_session_id=gateway_session.session_id,
                        metadata_=dict(metadata),
                        created_at=now_utc,
                        paid_at=None,
                    ),
                )
                payment_id = payment.id
        except SQLAlchemyError:
            logger.exception(
                "checkout_payment_record_failed",
                card_id=card_id,
                event_id=event_id,
                session_id=gateway_session.session_id,
            )

        logger.info(
            "checkout_session_created",
            card_id=card_id,
            event_id=event_id,
            payment_id=payment_id,
            session_id=gateway_session.session_id,
            total_amount=amounts.total_amount,
            destination_charge=payout is not None,
        )
        return CheckoutResult(
            session_id=gateway_session.session_id,
            session_url=gateway_session.url,
            payment_id=payment_id,
            card_value=amounts.card_value,
            platform_fee=amounts.platform_fee,
            total_amount=amounts.total_amount,
        )

    async def _hold_card(
        self,
        session: AsyncSession,
        *,
        card: Card,
        guest_email: str,
        guest_name: str,
        now_utc: datetime,
    ) -> datetime:
        """Hold the card for the payer and return when the hold ends."""
        if is_reservation_expired(card, now_utc=now_utc):
            if not await CardStateMachine.expire_reservation(session, card, now_utc=now_utc):
                raise CardNoLongerAvailableError

        hold_until = now_utc + self._settings.checkout_reservation_ttl
        if card.status == CARD_STATUS_AVAILABLE:
            await CardStateMachine.reserve(
                session,
                card,
                guest_email=guest_email,
                guest_name=guest_name,
                unlock_code=generate_unlock_code(self._settings.unlock_code_length),
                reserved_until=hold_until,
                now_utc=now_utc,
            )
            return hold_until

        if card.status == CARD_STATUS_RESERVED:
            if card.guest_email != guest_email:
                raise CardReservedByAnotherError
            current_until = ensure_utc(card.reserved_until)
            if current_until is not None:
                hold_until = max(hold_until, current_until)
            await CardStateMachine.renew_reservation(
                session,
                card,
                reserved_until=hold_until,
                guest_name=guest_name,
                now_utc=now_utc,
            )
            return hold_until

        if card.status == CARD_STATUS_REVEALED:
            # Paying after a code reveal is allowed once, and only for the guest it was revealed to.
            if card.guest_email != guest_email:
                raise CardAlreadyRevealedError
            if await PaymentsRepo.has_paid_payment_for_card(session, card_id=card.id):
                raise CardAlreadyRevealedError
            return hold_until

        raise CardNoLongerAvailableError
