from __future__ import annotations

import inspect
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from pro_billing.billing.commands import (
    extend_admin_override,
    grant_admin_override,
    revoke_admin_override,
)
from pro_billing.billing.types import BillingErrorCode
from tests.billing.fake_store import FakeBillingStore

NOW = datetime(2024, 1, 10, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_grant_admin_override_starts_now(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    admin_id = uuid4()

    result = await grant_admin_override(
        user_id=user_id,
        admin_user_id=admin_id,
        grant_duration_days=7,
        reason="support ticket",
        now_utc=NOW,
    )

    assert result.ok is True
    assert result.data.starts_at == NOW
    assert result.data.ends_at == NOW + timedelta(days=7)
    override = billing_store.overrides_for(user_id)[0]
    assert override.id == result.data.override_id
    assert override.source_type == "admin"
    assert override.granted_by_user_id == admin_id
    assert override.reason == "support ticket"

    event = billing_store.events_of("override_granted")[0]
    assert event.source == "admin"
    assert event.entity_id == override.id
    assert event.payload["reason"] == "support ticket"
    assert billing_store.invalidated == [user_id]


@pytest.mark.asyncio
async def test_extend_admin_override_stacks_on_trial(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    billing_store.add_subscription(
        user_id=user_id,
        status="trialing",
        trial_starts_at=NOW - timedelta(days=4),
        trial_ends_at=NOW + timedelta(days=10),
    )

    result = await extend_admin_override(user_id=user_id, grant_duration_days=30, now_utc=NOW)

    assert result.ok is True
    assert result.data.starts_at == NOW + timedelta(days=10)
    assert result.data.ends_at == NOW + timedelta(days=40)
    assert len(billing_store.events_of("override_extended")) == 1


@pytest.mark.asyncio
async def test_grant_with_fixed_end_inside_access_changes_nothing(
    billing_store: FakeBillingStore,
) -> None:
    user_id = uuid4()
    billing_store.add_override(
        user_id=user_id,
        starts_at=NOW - timedelta(days=1),
        ends_at=NOW + timedelta(days=20),
    )

    result = await grant_admin_override(
        user_id=user_id,
        grant_fixed_ends_at=NOW + timedelta(days=5),
        now_utc=NOW,
    )

    assert result.ok is True
    assert result.data.no_extension is True
    assert result.data.override_id is None
    assert len(billing_store.overrides_for(user_id)) == 1
    event = billing_store.events_of("override_granted")[0]
    assert event.entity_id is None
    assert event.payload["no_extension"] is True
    assert billing_store.invalidated == []


@pytest.mark.asyncio
async def test_revoke_active_override_ends_it_now(billing_store: FakeBillingStore) -> None:
    user_id = uuid4()
    override = billing_store.add_override(
        user_id=user_id,
        starts_at=NOW - timedelta(days=2),
        ends_at=NOW + timedelta(days=5),
    )

    result = await revoke_admin_override(override_id=override.id, reason="abuse", now_utc=NOW)

    assert result.ok is True
    assert result.data.already_revoked is False
    assert result.data.ends_at == NOW
    assert override.ends_at == NOW
    event = billing_store.events_of("override_revoked")[0]
    assert event.payload["previous_ends_at"] == (NOW + timedelta(days=5)).isoformat()
    assert billing_store.invalidated == [user_id]


@pytest.mark.asyncio
async def test_revoke_expired_override_is_noop(billing_store: FakeBillingStore) -> None:
    override = billing_store.add_override(
        user_id=uuid4(),
        starts_at=NOW - timedelta(days=10),
        ends_at=NOW - timedelta(days=1),
    )

    result = await revoke_admin_override(override_id=override.id, now_utc=NOW)

    assert result.ok is True
    assert result.data.already_revoked is True
    assert result.data.ends_at == NOW - timedelta(days=1)
    assert billing_store.events == []


@pytest.mark.asyncio
async def test_revoke_future_override_is_invalid_state(billing_store: FakeBillingStore) -> None:
    override = billing_store.add_override(
        user_id=uuid4(),
        starts_at=NOW + timedelta(days=1),
        ends_at=NOW + timedelta(days=5),
    )

    result = await revoke_admin_override(override_id=override.id, now_utc=NOW)

    assert result.ok is False
    assert result.code == BillingErrorCode.INVALID_STATE
    assert override.ends_at == NOW + timedelta(days=5)


@pytest.mark.asyncio
async def test_revoke_unknown_override_is_not_found(billing_store: FakeBillingStore) -> None:
    result = await revoke_admin_override(override_id=uuid4(), now_utc=NOW)

    assert result.ok is False
    assert result.code == BillingErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_admin_grants_stack_on_stored_access_under_user_lock(
    billing_store: FakeBillingStore,
) -> None:
    user_id = uuid4()
    billing_store.add_override(
        user_id=user_id,
        starts_at=NOW - timedelta(days=9),
        ends_at=datetime(2024, 2, 1, tzinfo=timezone.utc),
        source_type="promotion",
    )

    granted = await grant_admin_override(user_id=user_id, grant_duration_days=7, now_utc=NOW)
    extended = await extend_admin_override(user_id=user_id, grant_duration_days=7, now_utc=NOW)

    for command in (grant_admin_override, extend_admin_override):
        assert "is_internal" not in inspect.signature(command).parameters
    assert granted.data.starts_at == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert granted.data.ends_at == datetime(2024, 2, 8, tzinfo=timezone.utc)
    assert extended.data.starts_at == datetime(2024, 2, 8, tzinfo=timezone.utc)
    assert extended.data.ends_at == datetime(2024, 2, 15, tzinfo=timezone.utc)
    assert billing_store.grant_locks == [user_id, user_id]
