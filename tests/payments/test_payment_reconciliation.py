from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from revealcards.cards.issuer import UnlockCodeIssuer
from revealcards.cards.verifier import UnlockVerifier
from revealcards.db.models.reconciliation_runs import ReconciliationRun
from revealcards.db.repo.payments_repo import PaymentsRepo
from revealcards.payments.checkout import CheckoutInitiator
from revealcards.payments.errors import CheckoutGatewayError, PaymentNotFoundError
from revealcards.payments.reconciliation import PaymentReconciler
from tests.reveal_fixtures import NOW, create_event_with_cards, load_card, load_payments


async def _checkout(session_factory, gateway, settings, *, event_id: int, card_number: int, email: str):
    card = await load_card(session_factory, event_id=event_id, card_number=card_number)
    initiator = CheckoutInitiator(session_factory=session_factory, gateway=gateway, settings=settings)
    return await initiator.start_checkout(
        card_id=card.id,
        event_id=event_id,
        guest_name=email.split("@")[0].title(),
        guest_email=email,
        now_utc=NOW,
    )


def _reconciler(session_factory, gateway, settings) -> PaymentReconciler:
    return PaymentReconciler(session_factory=session_factory, gateway=gateway, settings=settings)


async def _runs(session_factory) -> list[ReconciliationRun]:
    async with session_factory() as session:
        result = await session.execute(select(ReconciliationRun).order_by(ReconciliationRun.id))
        return list(result.scalars().all())


async def test_paid_session_is_applied_once(session_factory, gateway, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[5000, 1000])
    checkout = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=1, email="ana@example.com")
    await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=2, email="bob@example.com")
    gateway.mark_paid(checkout.session_id)
    reconciler = _reconciler(session_factory, gateway, settings)

    first = await reconciler.reconcile_pending(now_utc=NOW + timedelta(minutes=5))
    second = await reconciler.reconcile_pending(now_utc=NOW + timedelta(minutes=10))

    assert (first.examined, first.payments_updated, first.cards_updated, first.errors) == (2, 1, 1, 0)
    assert (second.examined, second.payments_updated, second.cards_updated) == (1, 0, 0)

    card = await load_card(session_factory, event_id=event_id, card_number=1)
    assert card.status == "REVEALED"
    assert card.guest_email == "ana@example.com"
    assert card.unlock_code is None
    payments = await load_payments(session_factory)
    assert [payment.status for payment in payments] == ["PAID", "PENDING"]
    assert payments[0].paid_at is not None

    runs = await _runs(session_factory)
    assert [run.status for run in runs] == ["OK", "OK"]
    assert runs[0].trigger == "MANUAL"
    assert runs[0].payments_updated == 1


async def test_payments_outside_window_are_skipped(session_factory, gateway, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[5000])
    checkout = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=1, email="ana@example.com")
    gateway.mark_paid(checkout.session_id)

    summary = await _reconciler(session_factory, gateway, settings).reconcile_pending(
        now_utc=NOW + timedelta(hours=25)
    )

    assert summary.examined == 0
    assert gateway.status_calls == []


async def test_gateway_errors_are_counted_and_batch_continues(session_factory, gateway, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[5000, 1000])
    broken = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=1, email="ana@example.com")
    healthy = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=2, email="bob@example.com")
    gateway.failing_session_ids.add(broken.session_id)
    gateway.mark_paid(healthy.session_id)

    summary = await _reconciler(session_factory, gateway, settings).reconcile_pending(now_utc=NOW)

    assert summary.errors == 1
    assert summary.payments_updated == 1
    assert (await _runs(session_factory))[0].status == "PARTIAL"


async def test_second_paid_payment_for_card_is_a_conflict(session_factory, gateway, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[5000])
    first = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=1, email="ana@example.com")
    second = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=1, email="ana@example.com")
    gateway.mark_paid(first.session_id)
    gateway.mark_paid(second.session_id)

    summary = await _reconciler(session_factory, gateway, settings).reconcile_pending(now_utc=NOW)

    assert summary.payments_updated == 1
    assert summary.conflicts == 1
    assert [payment.status for payment in await load_payments(session_factory)] == ["PAID", "PENDING"]
    assert (await _runs(session_factory))[0].status == "PARTIAL"


async def test_payment_for_card_revealed_by_code_keeps_existing_owner(
    session_factory, gateway, notifier, settings
) -> None:
    event_id = await create_event_with_cards(session_factory, values=[5000])
    issuer = UnlockCodeIssuer(session_factory=session_factory, notifier=notifier, settings=settings)
    await issuer.issue(event_id=event_id, card_number=1, email="ana@example.com", now_utc=NOW)
    checkout = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=1, email="ana@example.com")
    card = await load_card(session_factory, event_id=event_id, card_number=1)
    verifier = UnlockVerifier(session_factory=session_factory, settings=settings)
    await verifier.verify(event_id=event_id, card_number=1, email="ana@example.com", code=card.unlock_code, now_utc=NOW)
    gateway.mark_paid(checkout.session_id)

    summary = await _reconciler(session_factory, gateway, settings).reconcile_pending(now_utc=NOW)

    assert summary.payments_updated == 1
    assert summary.cards_updated == 0
    assert summary.conflicts == 0
    revealed = await load_card(session_factory, event_id=event_id, card_number=1)
    assert revealed.version == card.version + 1


async def test_reconcile_session_returns_value_to_payer(session_factory, gateway, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[5000])
    checkout = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=1, email="ana@example.com")
    reconciler = _reconciler(session_factory, gateway, settings)

    unpaid = await reconciler.reconcile_session(checkout.session_id, now_utc=NOW)
    gateway.mark_paid(checkout.session_id)
    paid = await reconciler.reconcile_session(checkout.session_id, now_utc=NOW)
    again = await reconciler.reconcile_session(checkout.session_id, now_utc=NOW)

    assert (unpaid.paid, unpaid.card_value) == (False, None)
    assert (paid.paid, paid.card_number, paid.card_value) == (True, 1, 5000)
    assert (paid.payment_updated, paid.card_updated) == (True, True)
    assert (again.paid, again.card_value, again.payment_updated) == (True, 5000, False)


async def test_reconcile_session_recovers_missing_payment(session_factory, gateway, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[5000])
    card = await load_card(session_factory, event_id=event_id, card_number=1)
    gateway.mark_paid(
        "cs_orphan",
        metadata={
            "card_id": str(card.id),
            "event_id": str(event_id),
            "card_value": "5000",
            "platform_fee": "500",
            "guest_email": "ana@example.com",
            "guest_name": "Ana",
        },
    )

    result = await _reconciler(session_factory, gateway, settings).reconcile_session("cs_orphan", now_utc=NOW)

    assert result.paid is True
    assert result.card_value == 5000
    [payment] = await load_payments(session_factory)
    assert payment.stripe_session_id == "cs_orphan"
    assert payment.status == "PAID"
    revealed = await load_card(session_factory, event_id=event_id, card_number=1)
    assert revealed.status == "REVEALED"
    assert revealed.guest_name == "Ana"


async def test_reconcile_session_unknown_or_failing(session_factory, gateway, settings) -> None:
    reconciler = _reconciler(session_factory, gateway, settings)

    with pytest.raises(PaymentNotFoundError):
        await reconciler.reconcile_session("cs_missing", now_utc=NOW)

    gateway.failing_session_ids.add("cs_down")
    with pytest.raises(CheckoutGatewayError):
        await reconciler.reconcile_session("cs_down", now_utc=NOW)


async def test_zero_window_does_not_fall_back_to_default(session_factory, gateway, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[5000])
    checkout = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=1, email="ana@example.com")
    gateway.mark_paid(checkout.session_id)

    summary = await _reconciler(session_factory, gateway, settings).reconcile_pending(
        window=timedelta(0),
        now_utc=NOW + timedelta(minutes=1),
    )

    assert summary.examined == 0
    assert gateway.status_calls == []


async def test_reconcile_session_reports_unique_violation_as_conflict(
    session_factory, gateway, settings, monkeypatch
) -> None:
    event_id = await create_event_with_cards(session_factory, values=[5000])
    checkout = await _checkout(session_factory, gateway, settings, event_id=event_id, card_number=1, email="ana@example.com")
    gateway.mark_paid(checkout.session_id)

    async def _violates_single_paid(*args, **kwargs):
        raise IntegrityError("UPDATE payments", {}, Exception("uq_payments_single_paid_per_card"))

    monkeypatch.setattr(PaymentsRepo, "mark_paid", _violates_single_paid)

    result = await _reconciler(session_factory, gateway, settings).reconcile_session(
        checkout.session_id, now_utc=NOW
    )

    assert (result.paid, result.card_value, result.payment_updated) == (False, None, False)
    [payment] = await load_payments(session_factory)
    assert payment.status == "PENDING"
    card = await load_card(session_factory, event_id=event_id, card_number=1)
    assert card.status == "RESERVED"
