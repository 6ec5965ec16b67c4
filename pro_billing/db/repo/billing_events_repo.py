from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.db.models.billing_events import BillingEvent


class BillingEventsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, event: BillingEvent) -> BillingEvent:
        session.add(event)
        await session.flush()
        return event

    @staticmethod
    async def try_create_external(
        session: AsyncSession,
        *,
        values: dict[str, Any],
    ) -> bool:
        stmt = (
            postgresql_insert(BillingEvent)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=[BillingEvent.provider, BillingEvent.external_event_id]
            )
            .returning(BillingEvent.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
