from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.db.models.billing_pending_entitlement_grants import (
    BillingPendingEntitlementGrant,
)


class BillingPendingGrantsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        grant: BillingPendingEntitlementGrant,
    ) -> BillingPendingEntitlementGrant:
        session.add(grant)
        await session.flush()
        return grant

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        grant_id: UUID,
    ) -> BillingPendingEntitlementGrant | None:
        stmt = (
            select(BillingPendingEntitlementGrant)
            .where(BillingPendingEntitlementGrant.id == grant_id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_claimable_for_update(
        session: AsyncSession,
        *,
        email_hashes: Sequence[str],
        entitlement_key: str,
        now_utc: datetime,
    ) -> list[BillingPendingEntitlementGrant]:
        if not email_hashes:
            return []
        stmt = (
            select(BillingPendingEntitlementGrant)
            .where(
                BillingPendingEntitlementGrant.email_hash.in_(list(email_hashes)),
                BillingPendingEntitlementGrant.entitlement_key == entitlement_key,
                BillingPendingEntitlementGrant.is_active.is_(True),
                BillingPendingEntitlementGrant.claimed_at.is_(None),
                or_(
                    BillingPendingEntitlementGrant.claim_valid_from.is_(None),
                    BillingPendingEntitlementGrant.claim_valid_from <= now_utc,
                ),
                or_(
                    BillingPendingEntitlementGrant.claim_valid_to.is_(None),
                    BillingPendingEntitlementGrant.claim_valid_to > now_utc,
                ),
            )
            .order_by(
                BillingPendingEntitlementGrant.created_at.asc(),
                BillingPendingEntitlementGrant.id.asc(),
            )
            .with_for_update()
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def try_claim(
        session: AsyncSession,
        *,
        grant_id: UUID,
        user_id: UUID,
        claim_source: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(BillingPendingEntitlementGrant)
            .where(
                BillingPendingEntitlementGrant.id == grant_id,
                BillingPendingEntitlementGrant.claimed_at.is_(None),
            )
            .values(
                claimed_at=now_utc,
                claimed_by_user_id=user_id,
                claim_source=claim_source,
                updated_at=now_utc,
            )
            .returning(BillingPendingEntitlementGrant.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def deactivate_expired(session: AsyncSession, *, now_utc: datetime) -> list[UUID]:
        stmt = (
            update(BillingPendingEntitlementGrant)
            .where(
                BillingPendingEntitlementGrant.is_active.is_(True),
                BillingPendingEntitlementGrant.claimed_at.is_(None),
                BillingPendingEntitlementGrant.claim_valid_to.is_not(None),
                BillingPendingEntitlementGrant.claim_valid_to <= now_utc,
            )
            .values(is_active=False, updated_at=now_utc)
            .returning(BillingPendingEntitlementGrant.id)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
