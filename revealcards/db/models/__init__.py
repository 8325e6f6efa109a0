from revealcards.db.models.base import Base
from revealcards.db.models.cards import Card
from revealcards.db.models.events import Event
from revealcards.db.models.payments import Payment
from revealcards.db.models.reconciliation_runs import ReconciliationRun
from revealcards.db.models.unlock_attempts import UnlockAttempt

__all__ = [
    "Base",
    "Card",
    "Event",
    "Payment",
    "ReconciliationRun",
    "UnlockAttempt",
]
