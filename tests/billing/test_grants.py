from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pro_billing.billing.grants import compute_grant_window, has_exactly_one_grant_shape

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_duration_grant_starts_now_without_access() -> None:
    window = compute_grant_window(now_utc=NOW, current_pro_until=None, grant_duration_days=30)

    assert window.starts_at == NOW
    assert window.ends_at == datetime(2024, 1, 31, tzinfo=timezone.utc)
    assert window.no_extension is False


def test_duration_grant_stacks_after_current_access() -> None:
    pro_until = datetime(2024, 2, 1, tzinfo=timezone.utc)

    window = compute_grant_window(
        now_utc=NOW + timedelta(days=9),
        current_pro_until=pro_until,
        grant_duration_days=30,
    )

    assert window.starts_at == pro_until
    assert window.ends_at == datetime(2024, 3, 2, tzinfo=timezone.utc)


def test_stale_pro_until_does_not_delay_grant() -> None:
    window = compute_grant_window(
        now_utc=NOW,
        current_pro_until=NOW - timedelta(days=3),
        grant_duration_days=7,
    )

    assert window.starts_at == NOW


def test_fixed_end_after_start_extends() -> None:
    fixed_end = datetime(2024, 6, 1, tzinfo=timezone.utc)

    window = compute_grant_window(
        now_utc=NOW,
        current_pro_until=datetime(2024, 2, 1, tzinfo=timezone.utc),
        grant_fixed_ends_at=fixed_end,
    )

    assert window.starts_at == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert window.ends_at == fixed_end
    assert window.no_extension is False


def test_fixed_end_before_stacked_start_is_no_extension() -> None:
    pro_until = datetime(2024, 3, 1, tzinfo=timezone.utc)

    window = compute_grant_window(
        now_utc=NOW,
        current_pro_until=pro_until,
        grant_fixed_ends_at=datetime(2024, 2, 1, tzinfo=timezone.utc),
    )

    assert window.starts_at == pro_until
    assert window.ends_at == pro_until
    assert window.no_extension is True


def test_grant_shape_must_be_exactly_one() -> None:
    assert has_exactly_one_grant_shape(grant_duration_days=30, grant_fixed_ends_at=None)
    assert has_exactly_one_grant_shape(grant_duration_days=None, grant_fixed_ends_at=NOW)
    assert not has_exactly_one_grant_shape(grant_duration_days=None, grant_fixed_ends_at=None)
    assert not has_exactly_one_grant_shape(grant_duration_days=30, grant_fixed_ends_at=NOW)
