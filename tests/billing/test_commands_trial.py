from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from pro_billing.billing.commands import start_trial_for_user
from pro_billing.billing.types import BillingErrorCode
from tests.billing.fake_store import FakeBillingStore

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_start_trial_requires_verified_email(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()

    result = await start_trial_for_user(user_id=user_id, email_verified=False, now_utc=NOW)

    assert result.ok is False
    assert result.code == BillingErrorCode.EMAIL_NOT_VERIFIED
    assert billing_store.trial_uses == set()
    assert billing_store.events == []


@pytest.mark.asyncio
async def test_start_trial_creates_subscription_and_event(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()

    result = await start_trial_for_user(user_id=user_id, email_verified=True, now_utc=NOW)

    assert result.ok is True
    assert result.data.trial_starts_at == NOW
    assert result.data.trial_ends_at == NOW + timedelta(days=14)

    subscription = billing_store.subscriptions[user_id]
    assert subscription.id == result.data.subscription_id
    assert subscription.status == "trialing"
    assert subscription.trial_ends_at == NOW + timedelta(days=14)
    assert user_id in billing_store.trial_uses

    events = billing_store.events_of("trial_started")
    assert len(events) == 1
    assert events[0].entity_id == subscription.id
    assert events[0].payload == {
        "trial_ends_at": (NOW + timedelta(days=14)).isoformat(),
        "trial_days": 14,
    }
    assert billing_store.invalidated == [user_id]
    assert billing_store.dispatched_of("trial_started") == [
        {"user_id": user_id, "trial_ends_at": NOW + timedelta(days=14)}
    ]


@pytest.mark.asyncio
async def test_start_trial_respects_custom_length(billing_store: FakeBillingStore) -> None:
    result = await start_trial_for_user(
        user_id=uuid4(),
        email_verified=True,
        trial_days=7,
        now_utc=NOW,
    )

    assert result.ok is True
    assert result.data.trial_ends_at == NOW + timedelta(days=7)


@pytest.mark.asyncio
async def test_start_trial_is_once_per_user(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    first = await start_trial_for_user(user_id=user_id, email_verified=True, now_utc=NOW)
    assert first.ok is True

    second = await start_trial_for_user(
        user_id=user_id,
        email_verified=True,
        now_utc=NOW + timedelta(days=30),
    )

    assert second.ok is False
    assert second.code == BillingErrorCode.TRIAL_ALREADY_USED
    assert len(billing_store.events_of("trial_started")) == 1


@pytest.mark.asyncio
async def test_start_trial_rejects_user_with_access(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    billing_store.add_override(
        user_id=user_id,
        starts_at=NOW - timedelta(days=1),
        ends_at=NOW + timedelta(days=10),
    )

    result = await start_trial_for_user(user_id=user_id, email_verified=True, now_utc=NOW)

    assert result.ok is False
    assert result.code == BillingErrorCode.ALREADY_PRO
    assert billing_store.trial_uses == set()
    assert billing_store.dispatched == []


@pytest.mark.asyncio
async def test_start_trial_rejects_internal_user(billing_store: FakeBillingStore) -> None:
    result = await start_trial_for_user(
        user_id=uuid4(),
        email_verified=True,
        is_internal=True,
        now_utc=NOW,
    )

    assert result.ok is False
    assert result.code == BillingErrorCode.ALREADY_PRO
