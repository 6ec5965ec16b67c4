from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from pro_billing.billing.types import BillingEntityType, BillingEventSource, BillingEventType
from pro_billing.db.models.billing_events import BillingEvent
from pro_billing.db.repo.billing_events_repo import BillingEventsRepo


async def append_billing_event(
    session: AsyncSession,
    *,
    source: BillingEventSource,
    event_type: BillingEventType,
    entity_type: BillingEntityType,
    user_id: UUID | None = None,
    entity_id: UUID | None = None,
    payload: dict[str, Any] | None = None,
    provider: str | None = None,
    external_event_id: str | None = None,
    request_id: str | None = None,
    idempotency_key: str | None = None,
) -> bool:
    """Append one ledger row inside the caller's transaction.

    Returns False only when an event with the same (provider, external_event_id)
    was already recorded.
    """
    values: dict[str, Any] = {
        "source": source.value,
        "type": event_type.value,
        "entity_type": entity_type.value,
        "user_id": user_id,
        "entity_id": entity_id,
        "payload": payload or {},
        "provider": provider,
        "external_event_id": external_event_id,
        "request_id": request_id,
        "idempotency_key": idempotency_key,
    }
    if provider is not None and external_event_id is not None:
        return await BillingEventsRepo.try_create_external(session, values=values)

    await BillingEventsRepo.create(session, event=BillingEvent(**values))
    return True
