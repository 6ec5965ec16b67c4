from __future__ import annotations

from datetime import datetime
from typing import Any

from pro_billing.billing.types import (
    BillingStatus,
    EntitlementEvaluation,
    EntitlementInterval,
    SubscriptionSnapshot,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_interval(interval: EntitlementInterval) -> dict[str, Any]:
    return {
        "source": interval.source.value,
        "starts_at": interval.starts_at.isoformat(),
        "ends_at": interval.ends_at.isoformat(),
        "source_id": interval.source_id,
        "created_at": _iso(interval.created_at),
    }


def serialize_evaluation(evaluation: EntitlementEvaluation) -> dict[str, Any]:
    return {
        "is_pro": evaluation.is_pro,
        "pro_until": _iso(evaluation.pro_until),
        "effective_source": (
            evaluation.effective_source.value if evaluation.effective_source is not None else None
        ),
        "sources": [serialize_interval(interval) for interval in evaluation.sources],
        "next_pro_starts_at": _iso(evaluation.next_pro_starts_at),
    }


def serialize_subscription(snapshot: SubscriptionSnapshot) -> dict[str, Any]:
    return {
        "id": str(snapshot.id),
        "status": snapshot.status.value,
        "plan_key": snapshot.plan_key,
        "trial_starts_at": _iso(snapshot.trial_starts_at),
        "trial_ends_at": _iso(snapshot.trial_ends_at),
        "current_period_starts_at": _iso(snapshot.current_period_starts_at),
        "current_period_ends_at": _iso(snapshot.current_period_ends_at),
        "cancel_at_period_end": snapshot.cancel_at_period_end,
        "canceled_at": _iso(snapshot.canceled_at),
        "ended_at": _iso(snapshot.ended_at),
    }


def serialize_billing_status(status: BillingStatus) -> dict[str, Any]:
    return {
        **serialize_evaluation(status.evaluation),
        "subscription": (
            serialize_subscription(status.subscription) if status.subscription is not None else None
        ),
        "trial_eligible": status.trial_eligible,
    }
