from revealcards.db.repo.cards_repo import CardsRepo
from revealcards.db.repo.events_repo import EventsRepo
from revealcards.db.repo.payments_repo import PaymentsRepo
from revealcards.db.repo.reconciliation_runs_repo import ReconciliationRunsRepo
from revealcards.db.repo.unlock_attempts_repo import UnlockAttemptsRepo

__all__ = [
    "CardsRepo",
    "EventsRepo",
    "PaymentsRepo",
    "ReconciliationRunsRepo",
    "UnlockAttemptsRepo",
]
