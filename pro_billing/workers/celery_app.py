from celery import Celery
from celery.signals import worker_process_init

from pro_billing.core.config import get_settings
from pro_billing.core.logging import configure_logging

settings = get_settings()

celery_app = Celery(
    "pro_billing",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "pro_billing.workers.tasks.billing_maintenance",
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


@worker_process_init.connect
def _configure_worker_logging(**_: object) -> None:
    configure_logging(get_settings().log_level)


@celery_app.task(name="pro_billing.workers.celery_app.ping")
def ping() -> str:
    return "pong"
