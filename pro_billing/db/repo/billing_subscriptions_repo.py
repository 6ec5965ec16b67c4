from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.db.models.billing_events import BillingEvent
from pro_billing.db.models.billing_subscriptions import BillingSubscription

_LIVE_STATUSES = ("trialing", "active")


class BillingSubscriptionsRepo:
    @staticmethod
    async def get_by_user_id(session: AsyncSession, user_id: UUID) -> BillingSubscription | None:
        stmt = select(BillingSubscription).where(BillingSubscription.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_user_id_for_update(
        session: AsyncSession,
        user_id: UUID,
    ) -> BillingSubscription | None:
        stmt = (
            select(BillingSubscription)
            .where(BillingSubscription.user_id == user_id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        subscription_id: UUID,
    ) -> BillingSubscription | None:
        stmt = (
            select(BillingSubscription)
            .where(BillingSubscription.id == subscription_id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def upsert_trialing(
        session: AsyncSession,
        *,
        user_id: UUID,
        plan_key: str,
        trial_starts_at: datetime,
        trial_ends_at: datetime,
        now_utc: datetime,
    ) -> UUID:
        trial_values = {
            "plan_key": plan_key,
            "status": "trialing",
            "trial_starts_at": trial_starts_at,
            "trial_ends_at": trial_ends_at,
            "current_period_starts_at": None,
            "current_period_ends_at": None,
            "cancel_at_period_end": False,
            "canceled_at": None,
            "ended_at": None,
            "updated_at": now_utc,
        }
        stmt = (
            postgresql_insert(BillingSubscription)
            .values(user_id=user_id, created_at=now_utc, **trial_values)
            .on_conflict_do_update(
                index_elements=[BillingSubscription.user_id],
                set_=trial_values,
            )
            .returning(BillingSubscription.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    @staticmethod
    async def list_expired_ids(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int,
    ) -> list[UUID]:
        stmt = (
            select(BillingSubscription.id)
            .where(
                or_(
                    and_(
                        BillingSubscription.status == "trialing",
                        BillingSubscription.trial_ends_at <= now_utc,
                    ),
                    and_(
                        BillingSubscription.status == "active",
                        BillingSubscription.current_period_ends_at <= now_utc,
                    ),
                )
            )
            .order_by(BillingSubscription.updated_at.asc(), BillingSubscription.id.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def mark_ended(
        session: AsyncSession,
        *,
        subscription_id: UUID,
        ended_at: datetime,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(BillingSubscription)
            .where(
                BillingSubscription.id == subscription_id,
                BillingSubscription.status.in_(_LIVE_STATUSES),
            )
            .values(status="ended", ended_at=ended_at, updated_at=now_utc)
            .returning(BillingSubscription.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_expiring_trials_without_notice(
        session: AsyncSession,
        *,
        now_utc: datetime,
        until_utc: datetime,
        limit: int,
    ) -> list[BillingSubscription]:
        stmt = (
            select(BillingSubscription)
            .outerjoin(
                BillingEvent,
                and_(
                    BillingEvent.entity_type == "subscription",
                    BillingEvent.entity_id == BillingSubscription.id,
                    BillingEvent.type == "trial_expiring_soon_notified",
                ),
            )
            .where(
                BillingSubscription.status == "trialing",
                BillingSubscription.cancel_at_period_end.is_(False),
                BillingSubscription.trial_ends_at >= now_utc,
                BillingSubscription.trial_ends_at <= until_utc,
                BillingEvent.id.is_(None),
            )
            .order_by(BillingSubscription.trial_ends_at.asc(), BillingSubscription.id.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
