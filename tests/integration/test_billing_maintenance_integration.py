from __future__ import annotations

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from pro_billing.billing import maintenance
from pro_billing.billing.commands import start_trial_for_user
from pro_billing.db.models.billing_subscriptions import BillingSubscription
from pro_billing.db.session import SessionLocal
from tests.integration.billing_fixtures import (
    UTC,
    count_events,
    create_promotion_row,
    events_for_entity,
)


@pytest.mark.asyncio
async def test_maintenance_sweeps_are_idempotent() -> None:
    user_id = uuid4()
    started_at = datetime.now(UTC) - timedelta(days=15)
    trial = await start_trial_for_user(user_id=user_id, email_verified=True, now_utc=started_at)
    assert trial.ok is True

    now_utc = datetime.now(UTC)
    first = await maintenance.run_billing_maintenance(now_utc)
    second = await maintenance.run_billing_maintenance(now_utc + timedelta(minutes=10))

    assert first["ended_subscriptions"] == 1
    assert second["ended_subscriptions"] == 0
    assert await count_events("subscription_ended") == 1
    async with SessionLocal.begin() as session:
        subscription = await session.get(BillingSubscription, trial.data.subscription_id)
        assert subscription.status == "ended"
        assert subscription.ended_at == trial.data.trial_ends_at
    history = await events_for_entity(
        entity_type="subscription",
        entity_id=trial.data.subscription_id,
    )
    assert [event.type for event in history] == ["trial_started", "subscription_ended"]


@pytest.mark.asyncio
async def test_expiring_trial_notice_is_sent_once() -> None:
    now_utc = datetime.now(UTC)
    trial = await start_trial_for_user(
        user_id=uuid4(),
        email_verified=True,
        now_utc=now_utc - timedelta(days=12),
    )
    assert trial.ok is True

    assert await maintenance.notify_expiring_trials(now_utc) == 1
    assert await maintenance.notify_expiring_trials(now_utc + timedelta(hours=1)) == 0
    assert await count_events("trial_expiring_soon_notified") == 1


@pytest.mark.asyncio
async def test_expired_promotions_are_disabled_once() -> None:
    now_utc = datetime.now(UTC)
    await create_promotion_row(
        raw_code="OLD-CODE",
        now_utc=now_utc - timedelta(days=10),
        valid_to=now_utc - timedelta(days=1),
    )

    assert await maintenance.disable_expired_promotions(now_utc) == 1
    assert await maintenance.disable_expired_promotions(now_utc) == 0
    assert await count_events("promotion_disabled") == 1
