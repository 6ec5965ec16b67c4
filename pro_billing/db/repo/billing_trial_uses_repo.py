from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.db.models.billing_trial_uses import BillingTrialUse


class BillingTrialUsesRepo:
    @staticmethod
    async def exists_for_user(session: AsyncSession, user_id: UUID) -> bool:
        stmt = select(BillingTrialUse.user_id).where(BillingTrialUse.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def try_create(
        session: AsyncSession,
        *,
        user_id: UUID,
        source: str | None,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            postgresql_insert(BillingTrialUse)
            .values(user_id=user_id, used_at=now_utc, source=source, created_at=now_utc)
            .on_conflict_do_nothing(index_elements=[BillingTrialUse.user_id])
            .returning(BillingTrialUse.user_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
