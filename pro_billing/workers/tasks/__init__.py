from pro_billing.workers.tasks.billing_maintenance import (
    run_billing_maintenance_task,
    run_disable_expired_billing_grants,
    run_finalize_expired_subscriptions,
    run_notify_expiring_trials,
)

__all__ = [
    "run_billing_maintenance_task",
    "run_disable_expired_billing_grants",
    "run_finalize_expired_subscriptions",
    "run_notify_expiring_trials",
]
