from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.billing.entitlements import get_pro_entitlement_for_user
from pro_billing.billing.errors import ProAccessError
from pro_billing.billing.types import EntitlementEvaluation


async def require_pro_entitlement(
    session: AsyncSession,
    *,
    user_id: UUID,
    is_internal: bool,
    now_utc: datetime | None = None,
) -> EntitlementEvaluation:
    evaluation = await get_pro_entitlement_for_user(
        session,
        user_id=user_id,
        is_internal=is_internal,
        now_utc=now_utc or datetime.now(timezone.utc),
    )
    if not evaluation.is_pro:
        raise ProAccessError(evaluation)
    return evaluation
