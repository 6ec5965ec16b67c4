from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.db.models.billing_entitlement_overrides import BillingEntitlementOverride


# Namespace for per-user grant locks; the second key is hashtext(user_id).
GRANT_LOCK_NAMESPACE = 7301


class BillingOverridesRepo:
    @staticmethod
    async def lock_user_grants(session: AsyncSession, *, user_id: UUID) -> None:
        await session.execute(
            text("SELECT pg_advisory_xact_lock(:namespace, hashtext(:user_id))"),
            {"namespace": GRANT_LOCK_NAMESPACE, "user_id": str(user_id)},
        )

    @staticmethod
    async def list_unexpired_for_user(
        session: AsyncSession,
        *,
        user_id: UUID,
        entitlement_key: str,
        now_utc: datetime,
    ) -> list[BillingEntitlementOverride]:
        stmt = (
            select(BillingEntitlementOverride)
            .where(
                BillingEntitlementOverride.user_id == user_id,
                BillingEntitlementOverride.entitlement_key == entitlement_key,
                BillingEntitlementOverride.ends_at > now_utc,
            )
            .order_by(
                BillingEntitlementOverride.starts_at.asc(),
                BillingEntitlementOverride.created_at.asc(),
            )
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        override_id: UUID,
    ) -> BillingEntitlementOverride | None:
        stmt = (
            select(BillingEntitlementOverride)
            .where(BillingEntitlementOverride.id == override_id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        override: BillingEntitlementOverride,
    ) -> BillingEntitlementOverride:
        session.add(override)
        await session.flush()
        return override
