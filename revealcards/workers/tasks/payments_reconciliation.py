from __future__ import annotations

from dataclasses import asdict

import structlog

from revealcards.core.config import get_settings
from revealcards.db.session import SessionLocal
from revealcards.payments.constants import RECONCILIATION_TRIGGER_SCHEDULED
from revealcards.payments.reconciliation import PaymentReconciler
from revealcards.services.payment_gateway import PaymentGateway, build_payment_gateway
from revealcards.workers.asyncio_runner import run_async_job
from revealcards.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def reconcile_pending_payments_async(
    *,
    gateway: PaymentGateway | None = None,
    trigger: str = RECONCILIATION_TRIGGER_SCHEDULED,
) -> dict[str, int]:
    settings = get_settings()
    reconciler = PaymentReconciler(
        session_factory=SessionLocal,
        gateway=gateway or build_payment_gateway(settings),
        settings=settings,
    )
    summary = await reconciler.reconcile_pending(trigger=trigger)
    return asdict(summary)


@celery_app.task(name="revealcards.workers.tasks.payments_reconciliation.reconcile_pending_payments")
def reconcile_pending_payments() -> dict[str, int]:
    return run_async_job(reconcile_pending_payments_async())


def configure_payments_reconciliation_schedule(app) -> None:
    app.conf.beat_schedule = app.conf.beat_schedule or {}
    app.conf.beat_schedule.update(
        {
            "reconcile-pending-payments": {
                "task": "revealcards.workers.tasks.payments_reconciliation.reconcile_pending_payments",
                "schedule": float(get_settings().reconciliation_interval_seconds),
                "options": {"queue": "q_normal"},
            },
        }
    )


configure_payments_reconciliation_schedule(celery_app)
