from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from functools import cmp_to_key
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.billing.constants import PRO_ACCESS_ENTITLEMENT_KEY
from pro_billing.billing.types import (
    SOURCE_PRIORITY,
    EntitlementEvaluation,
    EntitlementInterval,
    EntitlementSource,
)
from pro_billing.db.models.billing_entitlement_overrides import BillingEntitlementOverride
from pro_billing.db.models.billing_subscriptions import BillingSubscription
from pro_billing.db.repo.billing_overrides_repo import BillingOverridesRepo
from pro_billing.db.repo.billing_subscriptions_repo import BillingSubscriptionsRepo

_OVERRIDE_SOURCE_MAP: dict[str, EntitlementSource] = {
    "admin": EntitlementSource.ADMIN_OVERRIDE,
    "promotion": EntitlementSource.PROMOTION,
    "pending_grant": EntitlementSource.PENDING_GRANT,
    "migration": EntitlementSource.MIGRATION,
}


def merge_intervals(
    intervals: Iterable[EntitlementInterval],
) -> list[tuple[datetime, datetime]]:
    """Coalesce intervals into disjoint windows; touching windows merge."""
    merged: list[tuple[datetime, datetime]] = []
    for interval in sorted(intervals, key=lambda item: (item.starts_at, item.ends_at)):
        if merged and interval.starts_at <= merged[-1][1]:
            last_starts_at, last_ends_at = merged[-1]
            merged[-1] = (last_starts_at, max(last_ends_at, interval.ends_at))
        else:
            merged.append((interval.starts_at, interval.ends_at))
    return merged


def _compare_candidates(left: EntitlementInterval, right: EntitlementInterval) -> int:
    priority_delta = SOURCE_PRIORITY[left.source] - SOURCE_PRIORITY[right.source]
    if priority_delta != 0:
        return priority_delta

    if left.created_at is not None and right.created_at is not None:
        if left.created_at != right.created_at:
            return -1 if left.created_at < right.created_at else 1

    if left.source_id is not None and right.source_id is not None:
        if left.source_id != right.source_id:
            return -1 if left.source_id < right.source_id else 1

    # sorted() is stable, so unresolved ties keep input order.
    return 0


def _pick_effective_source(
    active: Sequence[EntitlementInterval],
    *,
    window_starts_at: datetime,
    window_ends_at: datetime,
) -> EntitlementSource | None:
    candidates = [
        interval
        for interval in active
        if interval.starts_at <= window_ends_at
        and interval.ends_at >= window_starts_at
        and interval.ends_at == window_ends_at
    ]
    if not candidates:
        return None
    return sorted(candidates, key=cmp_to_key(_compare_candidates))[0].source


def evaluate_pro_entitlement(
    *,
    now_utc: datetime,
    is_internal: bool,
    intervals: Iterable[EntitlementInterval],
) -> EntitlementEvaluation:
    if is_internal:
        return EntitlementEvaluation(
            is_pro=True,
            pro_until=None,
            effective_source=EntitlementSource.INTERNAL_BYPASS,
            sources=[],
            next_pro_starts_at=None,
        )

    active = [interval for interval in intervals if interval.ends_at > now_utc]
    windows = merge_intervals(active)

    current_window = next(
        (window for window in windows if window[0] <= now_utc < window[1]),
        None,
    )
    if current_window is None:
        next_window = next((window for window in windows if window[0] > now_utc), None)
        return EntitlementEvaluation(
            is_pro=False,
            pro_until=None,
            effective_source=None,
            sources=active,
            next_pro_starts_at=next_window[0] if next_window is not None else None,
        )

    window_starts_at, window_ends_at = current_window
    return EntitlementEvaluation(
        is_pro=True,
        pro_until=window_ends_at,
        effective_source=_pick_effective_source(
            active,
            window_starts_at=window_starts_at,
            window_ends_at=window_ends_at,
        ),
        sources=active,
        next_pro_starts_at=None,
    )


def build_intervals(
    *,
    subscription: BillingSubscription | None,
    overrides: Iterable[BillingEntitlementOverride],
) -> list[EntitlementInterval]:
    intervals: list[EntitlementInterval] = []

    if subscription is not None:
        if (
            subscription.status == "trialing"
            and subscription.trial_starts_at is not None
            and subscription.trial_ends_at is not None
        ):
            intervals.append(
                EntitlementInterval(
                    source=EntitlementSource.TRIAL,
                    starts_at=subscription.trial_starts_at,
                    ends_at=subscription.trial_ends_at,
                    source_id=str(subscription.id),
                )
            )
        elif (
            subscription.status == "active"
            and subscription.current_period_starts_at is not None
            and subscription.current_period_ends_at is not None
        ):
            intervals.append(
                EntitlementInterval(
                    source=EntitlementSource.SUBSCRIPTION,
                    starts_at=subscription.current_period_starts_at,
                    ends_at=subscription.current_period_ends_at,
                    source_id=str(subscription.id),
                )
            )

    for override in overrides:
        intervals.append(
            EntitlementInterval(
                source=_OVERRIDE_SOURCE_MAP.get(override.source_type, EntitlementSource.SYSTEM),
                starts_at=override.starts_at,
                ends_at=override.ends_at,
                source_id=str(override.id),
                created_at=override.created_at,
            )
        )
    return intervals


async def get_pro_entitlement_for_user(
    session: AsyncSession,
    *,
    user_id: UUID,
    is_internal: bool,
    now_utc: datetime,
    subscription: BillingSubscription | None = None,
) -> EntitlementEvaluation:
    """Evaluate Pro access from stored state.

    Pass `subscription` when the caller already holds the row (e.g. locked);
    otherwise it is loaded here.
    """
    if is_internal:
        return evaluate_pro_entitlement(now_utc=now_utc, is_internal=True, intervals=())

    if subscription is None:
        subscription = await BillingSubscriptionsRepo.get_by_user_id(session, user_id)
    overrides = await BillingOverridesRepo.list_unexpired_for_user(
        session,
        user_id=user_id,
        entitlement_key=PRO_ACCESS_ENTITLEMENT_KEY,
        now_utc=now_utc,
    )
    return evaluate_pro_entitlement(
        now_utc=now_utc,
        is_internal=False,
        intervals=build_intervals(subscription=subscription, overrides=overrides),
    )
