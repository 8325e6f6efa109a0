from __future__ import annotations

from functools import lru_cache

from revealcards.cards.issuer import UnlockCodeIssuer
from revealcards.cards.listing import PublicCardListing
from revealcards.cards.verifier import UnlockVerifier
from revealcards.core.config import get_settings
from revealcards.db.session import SessionLocal
from revealcards.payments.checkout import CheckoutInitiator
from revealcards.payments.reconciliation import PaymentReconciler
from revealcards.services.notifications import NotificationChannel, build_notification_channel
from revealcards.services.payment_gateway import PaymentGateway, build_payment_gateway


@lru_cache(maxsize=1)
def get_notification_channel() -> NotificationChannel:
    return build_notification_channel(get_settings())


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    return build_payment_gateway(get_settings())


def get_public_card_listing() -> PublicCardListing:
    return PublicCardListing(session_factory=SessionLocal)


def get_unlock_code_issuer() -> UnlockCodeIssuer:
    return UnlockCodeIssuer(
        session_factory=SessionLocal,
        notifier=get_notification_channel(),
        settings=get_settings(),
    )


def get_unlock_verifier() -> UnlockVerifier:
    return UnlockVerifier(session_factory=SessionLocal, settings=get_settings())


def get_checkout_initiator() -> CheckoutInitiator:
    return CheckoutInitiator(
        session_factory=SessionLocal,
        gateway=get_payment_gateway(),
        settings=get_settings(),
    )


def get_payment_reconciler() -> PaymentReconciler:
    return PaymentReconciler(
        session_factory=SessionLocal,
        gateway=get_payment_gateway(),
        settings=get_settings(),
    )
