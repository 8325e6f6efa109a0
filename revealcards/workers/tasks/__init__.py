from revealcards.workers.tasks.payments_reconciliation import reconcile_pending_payments

__all__ = [
    "reconcile_pending_payments",
]
