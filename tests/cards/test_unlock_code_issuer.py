from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from revealcards.cards.errors import (
    CardAlreadyRevealedError,
    CardNotFoundError,
    CardReservedByAnotherError,
    InvalidEmailError,
    UnlockAttemptsUnavailableError,
    UnlockCodeDeliveryError,
    UnlockRateLimitedError,
)
from revealcards.cards.issuer import UnlockCodeIssuer
from revealcards.cards.rate_limit import UnlockRateLimiter
from revealcards.cards.state_machine import CardStateMachine
from revealcards.cards.verifier import UnlockVerifier
from revealcards.core.errors import ConflictError
from revealcards.db.repo.cards_repo import CardsRepo
from revealcards.db.repo.unlock_attempts_repo import UnlockAttemptsRepo
from tests.reveal_fixtures import NOW, FakeNotifier, create_event_with_cards, load_card


def _issuer(session_factory, notifier, settings, **kwargs) -> UnlockCodeIssuer:
    return UnlockCodeIssuer(
        session_factory=session_factory,
        notifier=notifier,
        settings=settings,
        **kwargs,
    )


async def test_issue_reserves_card_and_sends_code(session_factory, notifier, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[1000, 2000])
    issuer = _issuer(session_factory, notifier, settings)

    result = await issuer.issue(
        event_id=event_id,
        card_number=2,
        email=" Ana@Example.com ",
        guest_name="Ana",
        now_utc=NOW,
    )

    assert result.already_reserved is False
    assert result.reserved_until == NOW + timedelta(hours=24)
    assert result.message_id == "msg-1"

    card = await load_card(session_factory, event_id=event_id, card_number=2)
    assert card.status == "RESERVED"
    assert card.guest_email == "ana@example.com"
    assert card.guest_name == "Ana"
    assert card.unlock_code is not None
    assert len(card.unlock_code) == settings.unlock_code_length

    assert len(notifier.sent) == 1
    message = notifier.sent[0]
    assert message.to_address == "ana@example.com"
    assert card.unlock_code in message.body_html
    assert "#2" in message.subject


async def test_issue_for_same_email_does_not_send_again(session_factory, notifier, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[1000])
    issuer = _issuer(session_factory, notifier, settings)
    await issuer.issue(event_id=event_id, card_number=1, email="ana@example.com", now_utc=NOW)
    first = await load_card(session_factory, event_id=event_id, card_number=1)

    again = await issuer.issue(
        event_id=event_id,
        card_number=1,
        email="ANA@example.com",
        now_utc=NOW + timedelta(minutes=10),
    )

    assert again.already_reserved is True
    assert again.reserved_until == NOW + timedelta(hours=24)
    assert len(notifier.sent) == 1
    card = await load_card(session_factory, event_id=event_id, card_number=1)
    assert card.unlock_code == first.unlock_code
    assert card.version == first.version


async def test_issue_rejects_card_reserved_by_another(session_factory, notifier, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[1000])
    issuer = _issuer(session_factory, notifier, settings)
    await issuer.issue(event_id=event_id, card_number=1, email="ana@example.com", now_utc=NOW)

    with pytest.raises(CardReservedByAnotherError):
        await issuer.issue(event_id=event_id, card_number=1, email="bob@example.com", now_utc=NOW)

    assert len(notifier.sent) == 1


async def test_issue_after_expiry_hands_card_to_new_guest(session_factory, notifier, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[1000])
    issuer = _issuer(session_factory, notifier, settings)
    await issuer.issue(event_id=event_id, card_number=1, email="ana@example.com", now_utc=NOW)
    stale_code = (await load_card(session_factory, event_id=event_id, card_number=1)).unlock_code

    later = NOW + timedelta(hours=25)
    result = await issuer.issue(event_id=event_id, card_number=1, email="bob@example.com", now_utc=later)

    assert result.already_reserved is False
    card = await load_card(session_factory, event_id=event_id, card_number=1)
    assert card.status == "RESERVED"
    assert card.guest_email == "bob@example.com"
    assert len(notifier.sent) == 2

    verifier = UnlockVerifier(session_factory=session_factory, settings=settings)
    with pytest.raises(ConflictError):
        await verifier.verify(
            event_id=event_id,
            card_number=1,
            email="ana@example.com",
            code=stale_code,
            now_utc=later + timedelta(minutes=1),
        )

    card = await load_card(session_factory, event_id=event_id, card_number=1)
    assert card.status == "RESERVED"
    assert card.guest_email == "bob@example.com"


async def test_issue_for_revealed_card_fails(session_factory, notifier, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[1000])
    async with session_factory.begin() as session:
        card = await CardsRepo.get_by_event_and_number(session, event_id=event_id, card_number=1)
        await CardStateMachine.reveal_for_payment(
            session, card, guest_email="ana@example.com", guest_name="Ana", now_utc=NOW
        )

    with pytest.raises(CardAlreadyRevealedError):
        await _issuer(session_factory, notifier, settings).issue(
            event_id=event_id, card_number=1, email="bob@example.com", now_utc=NOW
        )


async def test_issue_validates_email_and_card(session_factory, notifier, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[1000])
    issuer = _issuer(session_factory, notifier, settings)

    with pytest.raises(InvalidEmailError):
        await issuer.issue(event_id=event_id, card_number=1, email="not-an-email", now_utc=NOW)
    with pytest.raises(CardNotFoundError):
        await issuer.issue(event_id=event_id, card_number=99, email="ana@example.com", now_utc=NOW)

    assert notifier.sent == []


async def test_delivery_failure_releases_reservation(session_factory, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[1000])
    issuer = _issuer(session_factory, FakeNotifier(fail=True), settings)

    with pytest.raises(UnlockCodeDeliveryError):
        await issuer.issue(event_id=event_id, card_number=1, email="ana@example.com", now_utc=NOW)

    card = await load_card(session_factory, event_id=event_id, card_number=1)
    assert card.status == "AVAILABLE"
    assert card.unlock_code is None
    assert card.guest_email is None


async def test_issue_is_rate_limited_per_key(session_factory, notifier, settings) -> None:
    event_id = await create_event_with_cards(session_factory, values=[1000])
    limiter = UnlockRateLimiter(max_attempts=2)
    for _ in range(3):
        async with session_factory.begin() as session:
            await limiter.check_and_record(
                session,
                email="ana@example.com",
                event_id=event_id,
                card_number=1,
                now_utc=NOW,
            )
    issuer = _issuer(session_factory, notifier, settings, rate_limiter=limiter)

    with pytest.raises(UnlockRateLimitedError) as exc_info:
        await issuer.issue(event_id=event_id, card_number=1, email="ana@example.com", now_utc=NOW)

    assert exc_info.value.locked_until == NOW + timedelta(minutes=15)
    assert notifier.sent == []
    card = await load_card(session_factory, event_id=event_id, card_number=1)
    assert card.status == "AVAILABLE"

    other = await issuer.issue(event_id=event_id, card_number=1, email="bob@example.com", now_utc=NOW)
    assert other.already_reserved is False


async def test_issue_fails_internally_when_attempts_cannot_be_recorded(
    session_factory, notifier, settings, monkeypatch
) -> None:
    event_id = await create_event_with_cards(session_factory, values=[1000])

    async def _broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("db down"))

    monkeypatch.setattr(UnlockAttemptsRepo, "get_or_create_for_update", _broken)

    with pytest.raises(UnlockAttemptsUnavailableError):
        await _issuer(session_factory, notifier, settings).issue(
            event_id=event_id, card_number=1, email="ana@example.com", now_utc=NOW
        )

    assert notifier.sent == []
    card = await load_card(session_factory, event_id=event_id, card_number=1)
    assert card.status == "AVAILABLE"
