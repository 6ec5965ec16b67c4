from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.db.models.billing_promotion_redemptions import BillingPromotionRedemption
from pro_billing.db.models.billing_promotions import BillingPromotion


class BillingPromotionsRepo:
    @staticmethod
    async def get_by_code_hashes_for_update(
        session: AsyncSession,
        code_hashes: Sequence[str],
    ) -> BillingPromotion | None:
        if not code_hashes:
            return None
        stmt = (
            select(BillingPromotion)
            .where(BillingPromotion.code_hash.in_(list(code_hashes)))
            .order_by(BillingPromotion.hash_version.desc())
            .limit(1)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        promotion_id: UUID,
    ) -> BillingPromotion | None:
        stmt = select(BillingPromotion).where(BillingPromotion.id == promotion_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, promotion: BillingPromotion) -> BillingPromotion:
        session.add(promotion)
        await session.flush()
        return promotion

    @staticmethod
    async def try_create_redemption(
        session: AsyncSession,
        *,
        promotion_id: UUID,
        user_id: UUID,
        now_utc: datetime,
    ) -> UUID | None:
        stmt = (
            postgresql_insert(BillingPromotionRedemption)
            .values(
                promotion_id=promotion_id,
                user_id=user_id,
                redeemed_at=now_utc,
                created_at=now_utc,
            )
            .on_conflict_do_nothing(
                index_elements=[
                    BillingPromotionRedemption.promotion_id,
                    BillingPromotionRedemption.user_id,
                ]
            )
            .returning(BillingPromotionRedemption.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def deactivate_expired(session: AsyncSession, *, now_utc: datetime) -> list[UUID]:
        stmt = (
            update(BillingPromotion)
            .where(
                BillingPromotion.is_active.is_(True),
                BillingPromotion.valid_to.is_not(None),
                BillingPromotion.valid_to <= now_utc,
            )
            .values(is_active=False, updated_at=now_utc)
            .returning(BillingPromotion.id)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
