from celery import Celery
from celery.signals import setup_logging

from revealcards.core.config import get_settings
from revealcards.core.logging import configure_logging

settings = get_settings()

celery_app = Celery(
    "revealcards",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "revealcards.workers.tasks.payments_reconciliation",
    ],
)

celery_app.conf.update(
    task_default_queue="q_normal",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)


@setup_logging.connect
def configure_worker_logging(**_kwargs) -> None:
    configure_logging(settings.log_level, service="worker")

