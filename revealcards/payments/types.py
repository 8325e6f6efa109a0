from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class CheckoutAmounts:
    card_value: int
    platform_fee: int
    total_amount: int


@dataclass(slots=True)
class CheckoutResult:
    session_id: str
    session_url: str
    payment_id: int | None
    card_value: int
    platform_fee: int
    total_amount: int


@dataclass(slots=True)
class PaidPaymentOutcome:
    payment_updated: bool = False
    card_updated: bool = False
    conflict: bool = False


@dataclass(slots=True)
class ReconciliationSummary:
    examined: int = 0
    payments_updated: int = 0
    cards_updated: int = 0
    errors: int = 0
    conflicts: int = 0

    def record(self, outcome: PaidPaymentOutcome) -> None:
        self.payments_updated += int(outcome.payment_updated)
        self.cards_updated += int(outcome.card_updated)
        self.conflicts += int(outcome.conflict)


@dataclass(slots=True)
class SessionReconcileResult:
    session_id: str
    paid: bool
    card_number: int | None = None
    card_value: int | None = None
    payment_updated: bool = False
    card_updated: bool = False
