from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from pro_billing.billing.commands import resume_subscription, schedule_cancel_at_period_end
from pro_billing.billing.types import BillingErrorCode
from tests.billing.fake_store import FakeBillingStore

NOW = datetime(2024, 1, 5, tzinfo=timezone.utc)


def _trialing(store: FakeBillingStore, user_id, *, ends_in_days: int = 9):
    return store.add_subscription(
        user_id=user_id,
        status="trialing",
        trial_starts_at=NOW - timedelta(days=5),
        trial_ends_at=NOW + timedelta(days=ends_in_days),
    )


@pytest.mark.asyncio
async def test_cancel_without_subscription_is_not_found(billing_store: FakeBillingStore) -> None:
    result = await schedule_cancel_at_period_end(user_id=uuid4(), now_utc=NOW)

    assert result.ok is False
    assert result.code == BillingErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_cancel_ended_subscription_is_rejected(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    billing_store.add_subscription(user_id=user_id, status="ended")

    result = await schedule_cancel_at_period_end(user_id=user_id, now_utc=NOW)

    assert result.ok is False
    assert result.code == BillingErrorCode.SUBSCRIPTION_ENDED


@pytest.mark.asyncio
async def test_cancel_lapsed_trial_is_not_active(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    _trialing(billing_store, user_id, ends_in_days=0)

    result = await schedule_cancel_at_period_end(user_id=user_id, now_utc=NOW)

    assert result.ok is False
    assert result.code == BillingErrorCode.NOT_ACTIVE


@pytest.mark.asyncio
async def test_cancel_twice_writes_one_event_and_one_email(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    subscription = _trialing(billing_store, user_id)

    first = await schedule_cancel_at_period_end(user_id=user_id, now_utc=NOW)
    second = await schedule_cancel_at_period_end(
        user_id=user_id,
        now_utc=NOW + timedelta(hours=1),
    )

    assert first.ok is True
    assert first.data.already_scheduled is False
    assert first.data.ends_at == NOW + timedelta(days=9)
    assert second.ok is True
    assert second.data.already_scheduled is True

    assert subscription.cancel_at_period_end is True
    assert subscription.canceled_at == NOW
    events = billing_store.events_of("cancel_scheduled")
    assert len(events) == 1
    assert events[0].payload == {
        "window": "trial",
        "ends_at": (NOW + timedelta(days=9)).isoformat(),
    }
    assert len(billing_store.dispatched_of("cancel_scheduled")) == 1
    assert billing_store.invalidated == [user_id]


@pytest.mark.asyncio
async def test_cancel_active_subscription_uses_period_end(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    billing_store.add_subscription(
        user_id=user_id,
        status="active",
        current_period_starts_at=NOW - timedelta(days=10),
        current_period_ends_at=NOW + timedelta(days=20),
    )

    result = await schedule_cancel_at_period_end(user_id=user_id, now_utc=NOW)

    assert result.ok is True
    assert result.data.ends_at == NOW + timedelta(days=20)
    assert billing_store.events_of("cancel_scheduled")[0].payload["window"] == "period"


@pytest.mark.asyncio
async def test_resume_clears_scheduled_cancel_once(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    subscription = _trialing(billing_store, user_id)
    await schedule_cancel_at_period_end(user_id=user_id, now_utc=NOW)

    first = await resume_subscription(user_id=user_id, now_utc=NOW + timedelta(hours=2))
    second = await resume_subscription(user_id=user_id, now_utc=NOW + timedelta(hours=3))

    assert first.ok is True
    assert first.data.already_resumed is False
    assert second.ok is True
    assert second.data.already_resumed is True
    assert subscription.cancel_at_period_end is False
    assert len(billing_store.events_of("cancel_reverted")) == 1


@pytest.mark.asyncio
async def test_resume_without_subscription_is_not_found(billing_store: FakeBillingStore) -> None:
    result = await resume_subscription(user_id=uuid4(), now_utc=NOW)

    assert result.ok is False
    assert result.code == BillingErrorCode.NOT_FOUND
