"""Pull-based payment reconciliation.

Pending payments are checked against the gateway and, once paid, marked
PAID and their card revealed. Every step is a no-op on rows that already
reached the final state, so the batch and the redirect confirmation can
run any number of times and in parallel.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revealcards.cards.codes import is_valid_email, normalize_email
from revealcards.cards.constants import CARD_STATUS_REVEALED
from revealcards.cards.state_machine import CardStateMachine
from revealcards.core.config import Settings, get_settings
from revealcards.core.errors import DomainError
from revealcards.core.timeutils import utcnow
from revealcards.db.models.payments import Payment
from revealcards.db.repo.cards_repo import CardsRepo
from revealcards.db.repo.payments_repo import PaymentsRepo
from revealcards.db.repo.reconciliation_runs_repo import ReconciliationRunsRepo
from revealcards.payments.constants import (
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
    RECONCILIATION_RUN_STATUS_OK,
    RECONCILIATION_RUN_STATUS_PARTIAL,
    RECONCILIATION_TRIGGER_MANUAL,
)
from revealcards.payments.errors import CheckoutGatewayError, PaymentNotFoundError
from revealcards.payments.types import (
    PaidPaymentOutcome,
    ReconciliationSummary,
    SessionReconcileResult,
)
from revealcards.services.payment_gateway import (
    GatewaySessionStatus,
    PaymentGateway,
    PaymentGatewayError,
)

logger = structlog.get_logger(__name__)


class PaymentReconciler:
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

    async def reconcile_pending(
        self,
        *,
        window: timedelta | None = None,
        trigger: str = RECONCILIATION_TRIGGER_MANUAL,
        now_utc: datetime | None = None,
    ) -> ReconciliationSummary:
        now_utc = now_utc or utcnow()
        if window is None:
            window = self._settings.reconciliation_window
        started_at = utcnow()

        async with self._session_factory() as session:
            pending = await PaymentsRepo.list_pending_since(
                session,
                since_utc=now_utc - window,
                limit=self._settings.reconciliation_batch_size,
            )
            targets = [(payment.id, payment.stripe_session_id) for payment in pending]

        summary = ReconciliationSummary()
        for payment_id, session_id in targets:
            summary.examined += 1
            if session_id is None:
                continue
            try:
                status = await self._gateway.get_session_status(session_id)
            except PaymentGatewayError:
                summary.errors += 1
                logger.exception(
                    "payment_status_check_failed",
                    payment_id=payment_id,
                    session_id=session_id,
                )
                continue

            if not status.paid:
                continue

            try:
                outcome = await self._apply_paid(payment_id=payment_id, now_utc=now_utc)
            except (DomainError, SQLAlchemyError):
                summary.errors += 1
                logger.exception(
                    "payment_reconcile_apply_failed",
                    payment_id=payment_id,
                    session_id=session_id,
                )
                continue
            summary.record(outcome)

        await self._record_run(
            summary=summary,
            trigger=trigger,
            started_at=started_at,
        )
        logger.info(
            "payments_reconciliation_finished",
            trigger=trigger,
            examined=summary.examined,
            payments_updated=summary.payments_updated,
            cards_updated=summary.cards_updated,
            errors=summary.errors,
            conflicts=summary.conflicts,
        )
        return summary

    async def reconcile_session(
        self,
        session_id: str,
        *,
        now_utc: datetime | None = None,
    ) -> SessionReconcileResult:
        now_utc = now_utc or utcnow()

        async with self._session_factory() as session:
            payment = await PaymentsRepo.get_by_session_id(session, session_id)
            payment_id = payment.id if payment is not None else None

        try:
            status = await self._gateway.get_session_status(session_id)
        except PaymentGatewayError as exc:
            raise CheckoutGatewayError from exc

        if payment_id is None:
            if not status.paid:
                raise PaymentNotFoundError
            payment_id = await self._recover_payment(status, now_utc=now_utc)

        outcome = PaidPaymentOutcome()
        if status.paid:
            outcome = await self._apply_paid(payment_id=payment_id, now_utc=now_utc)

        async with self._session_factory() as session:
            payment = await session.get(Payment, payment_id, populate_existing=True)
            if payment is None:
                raise PaymentNotFoundError
            card = await CardsRepo.get_by_id(session, payment.card_id)
            paid = payment.status == PAYMENT_STATUS_PAID
            revealed_to_payer = (
                paid
                and card is not None
                and card.status == CARD_STATUS_REVEALED
                and card.guest_email == payment.guest_email
            )
            return SessionReconcileResult(
                session_id=session_id,
                paid=paid,
                card_number=card.card_number if card is not None else None,
                card_value=card.value if revealed_to_payer else None,
                payment_updated=outcome.payment_updated,
                card_updated=outcome.card_updated,
            )

    async def _apply_paid(self, *, payment_id: int, now_utc: datetime) -> PaidPaymentOutcome:
        try:
            return await self._mark_paid_and_reveal(payment_id=payment_id, now_utc=now_utc)
        except IntegrityError:
            # Another payment for the card became PAID concurrently.
            logger.warning("payment_duplicate_paid_for_card", payment_id=payment_id)
            return PaidPaymentOutcome(conflict=True)

    async def _mark_paid_and_reveal(self, *, payment_id: int, now_utc: datetime) -> PaidPaymentOutcome:
        async with self._session_factory.begin() as session:
            payment = await PaymentsRepo.get_by_id_for_update(session, payment_id)
            if payment is None or payment.status != PAYMENT_STATUS_PENDING:
                return PaidPaymentOutcome()

            if await PaymentsRepo.has_paid_payment_for_card(session, card_id=payment.card_id):
                logger.warning(
                    "payment_duplicate_paid_for_card",
                    payment_id=payment.id,
                    card_id=payment.card_id,
                )
                return PaidPaymentOutcome(conflict=True)

            if not await PaymentsRepo.mark_paid(session, payment_id=payment.id, now_utc=now_utc):
                return PaidPaymentOutcome()

            card = await CardsRepo.get_by_id(session, payment.card_id)
            if card is None:
                return PaidPaymentOutcome(payment_updated=True)

            card_updated = await CardStateMachine.reveal_for_payment(
                session,
                card,
                guest_email=payment.guest_email,
                guest_name=payment.guest_name,
                now_utc=now_utc,
            )
            conflict = card.guest_email != payment.guest_email
            if conflict:
                logger.warning(
                    "payment_paid_for_card_revealed_to_another",
                    payment_id=payment.id,
                    card_id=card.id,
                )
            logger.info(
                "payment_marked_paid",
                payment_id=payment.id,
                card_id=card.id,
                card_updated=card_updated,
            )
            return PaidPaymentOutcome(
                payment_updated=True,
                card_updated=card_updated,
                conflict=conflict,
            )

    async def _recover_payment(self, status: GatewaySessionStatus, *, now_utc: datetime) -> int:
        """Create the local Payment row for a paid session that has none."""
        metadata = status.metadata
        guest_email = normalize_email(metadata.get("guest_email") or status.customer_email or "")
        try:
            card_id = int(metadata["card_id"])
            event_id = int(metadata["event_id"])
            card_value = int(metadata["card_value"])
            platform_fee = int(metadata.get("platform_fee", "0"))
        except (KeyError, ValueError):
            raise PaymentNotFoundError from None
        if not is_valid_email(guest_email):
            raise PaymentNotFoundError

        try:
            async with self._session_factory.begin() as session:
                payment = await PaymentsRepo.create(
                    session,
                    payment=Payment(
                        card_id=card_id,
                        event_id=event_id,
                        amount=card_value,
                        transaction_fee=platform_fee,
                        currency=self._settings.payment_currency,
                        guest_email=guest_email,
                        guest_name=metadata.get("guest_name") or None,
                        status=PAYMENT_STATUS_PENDING,
                        stripe_session_id=status.session_id,
                        metadata_=dict(metadata),
                        created_at=now_utc,
                        paid_at=None,
                    ),
                )
                payment_id = payment.id
        except IntegrityError:
            async with self._session_factory() as session:
                existing = await PaymentsRepo.get_by_session_id(session, status.session_id)
                if existing is None:
                    raise
                return existing.id

        logger.info(
            "payment_recovered_from_gateway",
            payment_id=payment_id,
            session_id=status.session_id,
            card_id=card_id,
        )
        return payment_id

    async def _record_run(
        self,
        *,
        summary: ReconciliationSummary,
        trigger: str,
        started_at: datetime,
    ) -> None:
        status = RECONCILIATION_RUN_STATUS_OK
        if summary.errors or summary.conflicts:
            status = RECONCILIATION_RUN_STATUS_PARTIAL
        async with self._session_factory.begin() as session:
            await ReconciliationRunsRepo.create(
                session,
                trigger=trigger,
                started_at=started_at,
                finished_at=utcnow(),
                status=status,
                payments_examined=summary.examined,
                payments_updated=summary.payments_updated,
                cards_updated=summary.cards_updated,
                error_count=summary.errors,
            )
