from __future__ import annotations

from datetime import datetime, timedelta

from pro_billing.billing.types import GrantWindow


def compute_grant_window(
    *,
    now_utc: datetime,
    current_pro_until: datetime | None,
    grant_duration_days: int | None = None,
    grant_fixed_ends_at: datetime | None = None,
) -> GrantWindow:
    """Window for a new grant, stacked onto any Pro time the user already holds."""
    if current_pro_until is not None and current_pro_until > now_utc:
        starts_at = current_pro_until
    else:
        starts_at = now_utc

    if grant_duration_days is not None:
        ends_at = starts_at + timedelta(days=grant_duration_days)
    elif grant_fixed_ends_at is not None:
        ends_at = max(grant_fixed_ends_at, starts_at)
    else:
        ends_at = starts_at

    return GrantWindow(
        starts_at=starts_at,
        ends_at=ends_at,
        no_extension=ends_at <= starts_at,
    )


def has_exactly_one_grant_shape(
    *,
    grant_duration_days: int | None,
    grant_fixed_ends_at: datetime | None,
) -> bool:
    return (grant_duration_days is None) != (grant_fixed_ends_at is None)
