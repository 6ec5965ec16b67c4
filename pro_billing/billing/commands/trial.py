from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from pro_billing.billing.commands.common import iso, logger, reject, utc_now
from pro_billing.billing.constants import PLAN_KEY_PRO
from pro_billing.billing.entitlements import get_pro_entitlement_for_user
from pro_billing.billing.events import append_billing_event
from pro_billing.billing.types import (
    BillingEntityType,
    BillingErrorCode,
    BillingEventSource,
    BillingEventType,
    CommandResult,
    CommandSuccess,
    TrialStarted,
)
from pro_billing.core.config import get_settings
from pro_billing.db.repo.billing_subscriptions_repo import BillingSubscriptionsRepo
from pro_billing.db.repo.billing_trial_uses_repo import BillingTrialUsesRepo
from pro_billing.db.session import SessionLocal
from pro_billing.services.billing_cache import invalidate_billing_status
from pro_billing.services.billing_emails import dispatch_notification, send_trial_started_email


async def start_trial_for_user(
    *,
    user_id: UUID,
    email_verified: bool,
    is_internal: bool = False,
    trial_days: int | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[TrialStarted]:
    now = now_utc or utc_now()
    if not email_verified:
        return reject(
            BillingErrorCode.EMAIL_NOT_VERIFIED,
            "Verify your email address before starting a trial.",
            user_id=str(user_id),
        )

    resolved_trial_days = trial_days if trial_days is not None else get_settings().billing_trial_days
    trial_ends_at = now + timedelta(days=resolved_trial_days)

    async with SessionLocal.begin() as session:
        evaluation = await get_pro_entitlement_for_user(
            session,
            user_id=user_id,
            is_internal=is_internal,
            now_utc=now,
        )
        if evaluation.is_pro:
            return reject(
                BillingErrorCode.ALREADY_PRO,
                "You already have Pro access.",
                user_id=str(user_id),
            )

        trial_use_created = await BillingTrialUsesRepo.try_create(
            session,
            user_id=user_id,
            source="self_serve",
            now_utc=now,
        )
        if not trial_use_created:
            return reject(
                BillingErrorCode.TRIAL_ALREADY_USED,
                "The free trial has already been used.",
                user_id=str(user_id),
            )

        subscription_id = await BillingSubscriptionsRepo.upsert_trialing(
            session,
            user_id=user_id,
            plan_key=PLAN_KEY_PRO,
            trial_starts_at=now,
            trial_ends_at=trial_ends_at,
            now_utc=now,
        )
        await append_billing_event(
            session,
            source=BillingEventSource.SYSTEM,
            event_type=BillingEventType.TRIAL_STARTED,
            entity_type=BillingEntityType.SUBSCRIPTION,
            user_id=user_id,
            entity_id=subscription_id,
            payload={"trial_ends_at": iso(trial_ends_at), "trial_days": resolved_trial_days},
        )

    await invalidate_billing_status(user_id)
    dispatch_notification(send_trial_started_email(user_id=user_id, trial_ends_at=trial_ends_at))
    logger.info(
        "billing_trial_started",
        user_id=str(user_id),
        subscription_id=str(subscription_id),
        trial_ends_at=iso(trial_ends_at),
    )
    return CommandSuccess(
        TrialStarted(
            subscription_id=subscription_id,
            trial_starts_at=now,
            trial_ends_at=trial_ends_at,
        )
    )
