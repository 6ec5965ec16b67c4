from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pro_billing.billing.commands.common import iso, logger, reject, utc_now
from pro_billing.billing.events import append_billing_event
from pro_billing.billing.types import (
    BillingEntityType,
    BillingErrorCode,
    BillingEventSource,
    BillingEventType,
    CancelScheduled,
    CommandFailure,
    CommandResult,
    CommandSuccess,
    SubscriptionResumed,
)
from pro_billing.db.models.billing_subscriptions import BillingSubscription
from pro_billing.db.repo.billing_subscriptions_repo import BillingSubscriptionsRepo
from pro_billing.db.session import SessionLocal
from pro_billing.services.billing_cache import invalidate_billing_status
from pro_billing.services.billing_emails import dispatch_notification, send_cancel_scheduled_email


def _current_window(subscription: BillingSubscription) -> tuple[str, datetime | None]:
    if subscription.status == "trialing":
        return "trial", subscription.trial_ends_at
    return "period", subscription.current_period_ends_at


def _check_running(
    subscription: BillingSubscription | None,
    *,
    user_id: UUID,
    now_utc: datetime,
) -> CommandFailure | None:
    if subscription is None:
        return reject(BillingErrorCode.NOT_FOUND, "No subscription found.", user_id=str(user_id))
    if subscription.status == "ended":
        return reject(
            BillingErrorCode.SUBSCRIPTION_ENDED,
            "The subscription has already ended.",
            user_id=str(user_id),
        )
    _, window_ends_at = _current_window(subscription)
    if window_ends_at is None or now_utc >= window_ends_at:
        return reject(
            BillingErrorCode.NOT_ACTIVE,
            "The subscription is not active.",
            user_id=str(user_id),
        )
    return None


async def schedule_cancel_at_period_end(
    *,
    user_id: UUID,
    now_utc: datetime | None = None,
) -> CommandResult[CancelScheduled]:
    now = now_utc or utc_now()
    async with SessionLocal.begin() as session:
        subscription = await BillingSubscriptionsRepo.get_by_user_id_for_update(session, user_id)
        failure = _check_running(subscription, user_id=user_id, now_utc=now)
        if failure is not None:
            return failure

        window, ends_at = _current_window(subscription)
        already_scheduled = subscription.cancel_at_period_end
        if not already_scheduled:
            subscription.cancel_at_period_end = True
            subscription.canceled_at = subscription.canceled_at or now
            subscription.updated_at = now
            await append_billing_event(
                session,
                source=BillingEventSource.SYSTEM,
                event_type=BillingEventType.CANCEL_SCHEDULED,
                entity_type=BillingEntityType.SUBSCRIPTION,
                user_id=user_id,
                entity_id=subscription.id,
                payload={"window": window, "ends_at": iso(ends_at)},
            )

    if not already_scheduled:
        await invalidate_billing_status(user_id)
        dispatch_notification(send_cancel_scheduled_email(user_id=user_id, ends_at=ends_at))
        logger.info("billing_cancel_scheduled", user_id=str(user_id), ends_at=iso(ends_at))
    return CommandSuccess(CancelScheduled(already_scheduled=already_scheduled, ends_at=ends_at))


async def resume_subscription(
    *,
    user_id: UUID,
    now_utc: datetime | None = None,
) -> CommandResult[SubscriptionResumed]:
    now = now_utc or utc_now()
    async with SessionLocal.begin() as session:
        subscription = await BillingSubscriptionsRepo.get_by_user_id_for_update(session, user_id)
        failure = _check_running(subscription, user_id=user_id, now_utc=now)
        if failure is not None:
            return failure

        already_resumed = not subscription.cancel_at_period_end
        if not already_resumed:
            subscription.cancel_at_period_end = False
            subscription.updated_at = now
            await append_billing_event(
                session,
                source=BillingEventSource.SYSTEM,
                event_type=BillingEventType.CANCEL_REVERTED,
                entity_type=BillingEntityType.SUBSCRIPTION,
                user_id=user_id,
                entity_id=subscription.id,
                payload={},
            )

    if not already_resumed:
        await invalidate_billing_status(user_id)
        logger.info("billing_cancel_reverted", user_id=str(user_id))
    return CommandSuccess(SubscriptionResumed(already_resumed=already_resumed))
