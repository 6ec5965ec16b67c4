from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.billing.entitlements import get_pro_entitlement_for_user
from pro_billing.billing.serialization import serialize_billing_status
from pro_billing.billing.types import BillingStatus, SubscriptionSnapshot, SubscriptionStatus
from pro_billing.core.config import get_settings
from pro_billing.db.models.billing_subscriptions import BillingSubscription
from pro_billing.db.repo.billing_subscriptions_repo import BillingSubscriptionsRepo
from pro_billing.db.repo.billing_trial_uses_repo import BillingTrialUsesRepo
from pro_billing.db.session import SessionLocal
from pro_billing.services.billing_cache import (
    read_cached_billing_status,
    write_cached_billing_status,
)


def build_subscription_snapshot(subscription: BillingSubscription) -> SubscriptionSnapshot:
    return SubscriptionSnapshot(
        id=subscription.id,
        status=SubscriptionStatus(subscription.status),
        plan_key=subscription.plan_key,
        trial_starts_at=subscription.trial_starts_at,
        trial_ends_at=subscription.trial_ends_at,
        current_period_starts_at=subscription.current_period_starts_at,
        current_period_ends_at=subscription.current_period_ends_at,
        cancel_at_period_end=subscription.cancel_at_period_end,
        canceled_at=subscription.canceled_at,
        ended_at=subscription.ended_at,
    )


async def get_billing_status_for_user(
    session: AsyncSession,
    *,
    user_id: UUID,
    is_internal: bool,
    now_utc: datetime,
) -> BillingStatus:
    subscription = await BillingSubscriptionsRepo.get_by_user_id(session, user_id)
    evaluation = await get_pro_entitlement_for_user(
        session,
        user_id=user_id,
        is_internal=is_internal,
        now_utc=now_utc,
        subscription=subscription,
    )
    trial_used = await BillingTrialUsesRepo.exists_for_user(session, user_id)
    return BillingStatus(
        evaluation=evaluation,
        subscription=(
            build_subscription_snapshot(subscription) if subscription is not None else None
        ),
        trial_eligible=not trial_used and not evaluation.is_pro,
    )


def _cache_ttl_seconds(status: BillingStatus, *, now_utc: datetime, max_ttl_seconds: int) -> int:
    # The cached answer flips at the next window boundary.
    boundary = status.evaluation.pro_until or status.evaluation.next_pro_starts_at
    if boundary is None:
        return max_ttl_seconds
    seconds_to_boundary = int((boundary - now_utc).total_seconds())
    return max(0, min(max_ttl_seconds, seconds_to_boundary))


async def get_cached_billing_status(
    *,
    user_id: UUID,
    is_internal: bool,
    now_utc: datetime | None = None,
) -> dict[str, Any]:
    resolved_now = now_utc or datetime.now(timezone.utc)
    cached = None
    if not is_internal:
        cached = await read_cached_billing_status(user_id)
        if cached.payload is not None:
            return cached.payload

    async with SessionLocal.begin() as session:
        status = await get_billing_status_for_user(
            session,
            user_id=user_id,
            is_internal=is_internal,
            now_utc=resolved_now,
        )

    payload = serialize_billing_status(status)
    if cached is not None and cached.generation is not None:
        await write_cached_billing_status(
            user_id,
            payload,
            generation=cached.generation,
            ttl_seconds=_cache_ttl_seconds(
                status,
                now_utc=resolved_now,
                max_ttl_seconds=get_settings().billing_status_cache_ttl_seconds,
            ),
        )
    return payload
