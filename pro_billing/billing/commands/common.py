from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.billing.constants import PRO_ACCESS_ENTITLEMENT_KEY
from pro_billing.billing.entitlements import get_pro_entitlement_for_user
from pro_billing.billing.types import (
    BillingErrorCode,
    CommandFailure,
    EntitlementEvaluation,
    GrantWindow,
    OverrideSourceType,
)
from pro_billing.db.models.billing_entitlement_overrides import BillingEntitlementOverride
from pro_billing.db.repo.billing_overrides_repo import BillingOverridesRepo
from pro_billing.db.repo.billing_subscriptions_repo import BillingSubscriptionsRepo

logger = structlog.get_logger("pro_billing.billing.commands")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def reject(code: BillingErrorCode, error: str, **log_fields: Any) -> CommandFailure:
    logger.info("billing_command_rejected", code=code.value, **log_fields)
    return CommandFailure(code=code, error=error)


async def evaluate_for_stacking(
    session: AsyncSession,
    *,
    user_id: UUID,
    now_utc: datetime,
) -> EntitlementEvaluation:
    """Evaluate stored access while holding the user's grant lock.

    The lock is taken whether or not a subscription row exists, so concurrent
    grant writers for one user serialize and `pro_until` cannot move before
    commit. The internal bypass is ignored here: grants always stack after the
    user's real paid or granted time.
    """
    await BillingOverridesRepo.lock_user_grants(session, user_id=user_id)
    subscription = await BillingSubscriptionsRepo.get_by_user_id_for_update(session, user_id)
    return await get_pro_entitlement_for_user(
        session,
        user_id=user_id,
        is_internal=False,
        now_utc=now_utc,
        subscription=subscription,
    )


async def create_override(
    session: AsyncSession,
    *,
    user_id: UUID,
    window: GrantWindow,
    source_type: OverrideSourceType,
    source_id: UUID | None,
    now_utc: datetime,
    reason: str | None = None,
    granted_by_user_id: UUID | None = None,
    metadata: dict[str, Any] | None = None,
) -> BillingEntitlementOverride:
    return await BillingOverridesRepo.create(
        session,
        override=BillingEntitlementOverride(
            user_id=user_id,
            entitlement_key=PRO_ACCESS_ENTITLEMENT_KEY,
            starts_at=window.starts_at,
            ends_at=window.ends_at,
            source_type=source_type.value,
            source_id=source_id,
            reason=reason,
            granted_by_user_id=granted_by_user_id,
            metadata_=metadata or {},
            created_at=now_utc,
        ),
    )
