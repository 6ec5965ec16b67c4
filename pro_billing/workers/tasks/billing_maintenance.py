from __future__ import annotations

from datetime import datetime, timezone

import structlog

from pro_billing.billing.maintenance import (
    disable_expired_pending_grants,
    disable_expired_promotions,
    finalize_expired_subscriptions,
    notify_expiring_trials,
    run_billing_maintenance,
)
from pro_billing.workers.asyncio_runner import run_async_job
from pro_billing.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def run_finalize_expired_subscriptions_async() -> dict[str, int]:
    ended_count = await finalize_expired_subscriptions(datetime.now(timezone.utc))
    return {"ended_subscriptions": ended_count}


async def run_notify_expiring_trials_async() -> dict[str, int]:
    notified_count = await notify_expiring_trials(datetime.now(timezone.utc))
    return {"trial_expiring_notified": notified_count}


async def run_disable_expired_billing_grants_async() -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    result = {
        "disabled_promotions": await disable_expired_promotions(now_utc),
        "disabled_pending_grants": await disable_expired_pending_grants(now_utc),
    }
    logger.info("billing_expired_grants_disabled", **result)
    return result


async def run_billing_maintenance_async() -> dict[str, int]:
    return await run_billing_maintenance(datetime.now(timezone.utc))


@celery_app.task(
    name="pro_billing.workers.tasks.billing_maintenance.run_finalize_expired_subscriptions"
)
def run_finalize_expired_subscriptions() -> dict[str, int]:
    return run_async_job(run_finalize_expired_subscriptions_async())


@celery_app.task(name="pro_billing.workers.tasks.billing_maintenance.run_notify_expiring_trials")
def run_notify_expiring_trials() -> dict[str, int]:
    return run_async_job(run_notify_expiring_trials_async())


@celery_app.task(
    name="pro_billing.workers.tasks.billing_maintenance.run_disable_expired_billing_grants"
)
def run_disable_expired_billing_grants() -> dict[str, int]:
    return run_async_job(run_disable_expired_billing_grants_async())


@celery_app.task(name="pro_billing.workers.tasks.billing_maintenance.run_billing_maintenance")
def run_billing_maintenance_task() -> dict[str, int]:
    return run_async_job(run_billing_maintenance_async())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "billing-finalize-expired-subscriptions-every-10-minutes": {
            "task": (
                "pro_billing.workers.tasks.billing_maintenance.run_finalize_expired_subscriptions"
            ),
            "schedule": 600.0,
            "options": {"queue": "q_normal"},
        },
        "billing-disable-expired-grants-every-10-minutes": {
            "task": (
                "pro_billing.workers.tasks.billing_maintenance.run_disable_expired_billing_grants"
            ),
            "schedule": 600.0,
            "options": {"queue": "q_normal"},
        },
        "billing-notify-expiring-trials-hourly": {
            "task": "pro_billing.workers.tasks.billing_maintenance.run_notify_expiring_trials",
            "schedule": 3600.0,
            "options": {"queue": "q_normal"},
        },
    }
)
