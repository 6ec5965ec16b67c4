from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

import structlog

from pro_billing.billing.constants import (
    MAINTENANCE_BATCH_LIMIT,
    TRIAL_EXPIRING_SOON_MARKER_PROVIDER,
)
from pro_billing.billing.events import append_billing_event
from pro_billing.billing.types import BillingEntityType, BillingEventSource, BillingEventType
from pro_billing.core.config import get_settings
from pro_billing.db.repo.billing_pending_grants_repo import BillingPendingGrantsRepo
from pro_billing.db.repo.billing_promotions_repo import BillingPromotionsRepo
from pro_billing.db.repo.billing_subscriptions_repo import BillingSubscriptionsRepo
from pro_billing.db.session import SessionLocal
from pro_billing.services.billing_cache import invalidate_billing_status
from pro_billing.services.billing_emails import (
    send_subscription_ended_email,
    send_trial_expiring_soon_email,
)

logger = structlog.get_logger(__name__)


def trial_expiring_marker_id(subscription_id: UUID) -> str:
    return f"{BillingEventType.TRIAL_EXPIRING_SOON_NOTIFIED.value}:{subscription_id}"


async def _finalize_subscription(
    subscription_id: UUID,
    *,
    now_utc: datetime,
) -> tuple[UUID, datetime, str] | None:
    async with SessionLocal.begin() as session:
        subscription = await BillingSubscriptionsRepo.get_by_id_for_update(session, subscription_id)
        if subscription is None:
            return None

        if subscription.status == "trialing":
            ended_status, ended_at = "trial", subscription.trial_ends_at
        elif subscription.status == "active":
            ended_status, ended_at = "active", subscription.current_period_ends_at
        else:
            return None
        if ended_at is None or ended_at > now_utc:
            return None

        user_id = subscription.user_id
        was_ended = await BillingSubscriptionsRepo.mark_ended(
            session,
            subscription_id=subscription_id,
            ended_at=ended_at,
            now_utc=now_utc,
        )
        if not was_ended:
            return None

        await append_billing_event(
            session,
            source=BillingEventSource.SYSTEM,
            event_type=BillingEventType.SUBSCRIPTION_ENDED,
            entity_type=BillingEntityType.SUBSCRIPTION,
            user_id=user_id,
            entity_id=subscription_id,
            payload={"ended_status": ended_status, "ended_at": ended_at.isoformat()},
        )
    return user_id, ended_at, ended_status


async def finalize_expired_subscriptions(now_utc: datetime | None = None) -> int:
    now = now_utc or datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        candidate_ids = await BillingSubscriptionsRepo.list_expired_ids(
            session,
            now_utc=now,
            limit=MAINTENANCE_BATCH_LIMIT,
        )

    ended_count = 0
    for subscription_id in candidate_ids:
        finalized = await _finalize_subscription(subscription_id, now_utc=now)
        if finalized is None:
            continue
        ended_count += 1
        user_id, ended_at, ended_status = finalized
        await invalidate_billing_status(user_id)
        await send_subscription_ended_email(
            user_id=user_id,
            ended_at=ended_at,
            ended_status=ended_status,
        )

    logger.info(
        "billing_subscriptions_finalized",
        candidates=len(candidate_ids),
        ended_subscriptions=ended_count,
    )
    return ended_count


async def notify_expiring_trials(
    now_utc: datetime | None = None,
    within_days: int | None = None,
) -> int:
    now = now_utc or datetime.now(timezone.utc)
    if within_days is None:
        within_days = get_settings().billing_trial_expiring_soon_days
    async with SessionLocal.begin() as session:
        subscriptions = await BillingSubscriptionsRepo.list_expiring_trials_without_notice(
            session,
            now_utc=now,
            until_utc=now + timedelta(days=within_days),
            limit=MAINTENANCE_BATCH_LIMIT,
        )
        candidates = [
            (subscription.id, subscription.user_id, subscription.trial_ends_at)
            for subscription in subscriptions
        ]

    notified_count = 0
    for subscription_id, user_id, trial_ends_at in candidates:
        async with SessionLocal.begin() as session:
            marker_created = await append_billing_event(
                session,
                source=BillingEventSource.SYSTEM,
                event_type=BillingEventType.TRIAL_EXPIRING_SOON_NOTIFIED,
                entity_type=BillingEntityType.SUBSCRIPTION,
                user_id=user_id,
                entity_id=subscription_id,
                payload={"trial_ends_at": trial_ends_at.isoformat()},
                provider=TRIAL_EXPIRING_SOON_MARKER_PROVIDER,
                external_event_id=trial_expiring_marker_id(subscription_id),
            )
        if not marker_created:
            continue
        notified_count += 1
        await send_trial_expiring_soon_email(user_id=user_id, trial_ends_at=trial_ends_at)

    logger.info(
        "billing_trial_expiring_notified",
        candidates=len(candidates),
        trial_expiring_notified=notified_count,
    )
    return notified_count


async def disable_expired_promotions(now_utc: datetime | None = None) -> int:
    now = now_utc or datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        promotion_ids = await BillingPromotionsRepo.deactivate_expired(session, now_utc=now)
        for promotion_id in promotion_ids:
            await append_billing_event(
                session,
                source=BillingEventSource.SYSTEM,
                event_type=BillingEventType.PROMOTION_DISABLED,
                entity_type=BillingEntityType.PROMOTION,
                entity_id=promotion_id,
                payload={"reason": "expired"},
            )

    logger.info("billing_expired_promotions_disabled", disabled_promotions=len(promotion_ids))
    return len(promotion_ids)


async def disable_expired_pending_grants(now_utc: datetime | None = None) -> int:
    now = now_utc or datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        grant_ids = await BillingPendingGrantsRepo.deactivate_expired(session, now_utc=now)
        for grant_id in grant_ids:
            await append_billing_event(
                session,
                source=BillingEventSource.SYSTEM,
                event_type=BillingEventType.PENDING_GRANT_DISABLED,
                entity_type=BillingEntityType.PENDING_GRANT,
                entity_id=grant_id,
                payload={"reason": "expired"},
            )

    logger.info("billing_expired_pending_grants_disabled", disabled_pending_grants=len(grant_ids))
    return len(grant_ids)


async def run_billing_maintenance(now_utc: datetime | None = None) -> dict[str, int]:
    now = now_utc or datetime.now(timezone.utc)
    result = {
        "ended_subscriptions": await finalize_expired_subscriptions(now),
        "trial_expiring_notified": await notify_expiring_trials(now),
        "disabled_promotions": await disable_expired_promotions(now),
        "disabled_pending_grants": await disable_expired_pending_grants(now),
    }
    logger.info("billing_maintenance_finished", **result)
    return result
