from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pro_billing.billing.commands.common import (
    create_override,
    evaluate_for_stacking,
    iso,
    logger,
    reject,
    utc_now,
)
from pro_billing.billing.events import append_billing_event
from pro_billing.billing.grants import compute_grant_window
from pro_billing.billing.types import (
    AdminOverrideApplied,
    AdminOverrideRevoked,
    BillingEntityType,
    BillingErrorCode,
    BillingEventSource,
    BillingEventType,
    CommandResult,
    CommandSuccess,
    OverrideSourceType,
)
from pro_billing.db.repo.billing_overrides_repo import BillingOverridesRepo
from pro_billing.db.session import SessionLocal
from pro_billing.services.billing_cache import invalidate_billing_status


async def _upsert_admin_override(
    *,
    event_type: BillingEventType,
    user_id: UUID,
    admin_user_id: UUID | None,
    grant_duration_days: int | None,
    grant_fixed_ends_at: datetime | None,
    reason: str | None,
    now_utc: datetime | None,
) -> CommandResult[AdminOverrideApplied]:
    now = now_utc or utc_now()
    async with SessionLocal.begin() as session:
        evaluation = await evaluate_for_stacking(
            session,
            user_id=user_id,
            now_utc=now,
        )
        window = compute_grant_window(
            now_utc=now,
            current_pro_until=evaluation.pro_until,
            grant_duration_days=grant_duration_days,
            grant_fixed_ends_at=grant_fixed_ends_at,
        )

        override_id: UUID | None = None
        payload: dict[str, object] = {
            "starts_at": iso(window.starts_at),
            "ends_at": iso(window.ends_at),
            "reason": reason,
        }
        if window.no_extension:
            payload["no_extension"] = True
        else:
            override = await create_override(
                session,
                user_id=user_id,
                window=window,
                source_type=OverrideSourceType.ADMIN,
                source_id=None,
                now_utc=now,
                reason=reason,
                granted_by_user_id=admin_user_id,
            )
            override_id = override.id
            payload["override_id"] = str(override_id)

        await append_billing_event(
            session,
            source=BillingEventSource.ADMIN,
            event_type=event_type,
            entity_type=BillingEntityType.OVERRIDE,
            user_id=user_id,
            entity_id=override_id,
            payload=payload,
        )

    if not window.no_extension:
        await invalidate_billing_status(user_id)
    logger.info(
        "billing_admin_override_applied",
        event_type=event_type.value,
        user_id=str(user_id),
        override_id=str(override_id) if override_id is not None else None,
        no_extension=window.no_extension,
    )
    return CommandSuccess(
        AdminOverrideApplied(
            override_id=override_id,
            starts_at=window.starts_at,
            ends_at=window.ends_at,
            no_extension=window.no_extension,
        )
    )


async def grant_admin_override(
    *,
    user_id: UUID,
    admin_user_id: UUID | None = None,
    grant_duration_days: int | None = None,
    grant_fixed_ends_at: datetime | None = None,
    reason: str | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[AdminOverrideApplied]:
    return await _upsert_admin_override(
        event_type=BillingEventType.OVERRIDE_GRANTED,
        user_id=user_id,
        admin_user_id=admin_user_id,
        grant_duration_days=grant_duration_days,
        grant_fixed_ends_at=grant_fixed_ends_at,
        reason=reason,
        now_utc=now_utc,
    )


async def extend_admin_override(
    *,
    user_id: UUID,
    admin_user_id: UUID | None = None,
    grant_duration_days: int | None = None,
    grant_fixed_ends_at: datetime | None = None,
    reason: str | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[AdminOverrideApplied]:
    return await _upsert_admin_override(
        event_type=BillingEventType.OVERRIDE_EXTENDED,
        user_id=user_id,
        admin_user_id=admin_user_id,
        grant_duration_days=grant_duration_days,
        grant_fixed_ends_at=grant_fixed_ends_at,
        reason=reason,
        now_utc=now_utc,
    )


async def revoke_admin_override(
    *,
    override_id: UUID,
    admin_user_id: UUID | None = None,
    reason: str | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[AdminOverrideRevoked]:
    now = now_utc or utc_now()
    async with SessionLocal.begin() as session:
        override = await BillingOverridesRepo.get_by_id_for_update(session, override_id)
        if override is None:
            return reject(
                BillingErrorCode.NOT_FOUND,
                "Override not found.",
                override_id=str(override_id),
            )
        if override.ends_at <= now:
            return CommandSuccess(
                AdminOverrideRevoked(
                    override_id=override_id,
                    already_revoked=True,
                    ends_at=override.ends_at,
                )
            )
        if override.starts_at >= now:
            return reject(
                BillingErrorCode.INVALID_STATE,
                "The override has not started yet.",
                override_id=str(override_id),
            )

        previous_ends_at = override.ends_at
        override.ends_at = now
        user_id = override.user_id
        await append_billing_event(
            session,
            source=BillingEventSource.ADMIN,
            event_type=BillingEventType.OVERRIDE_REVOKED,
            entity_type=BillingEntityType.OVERRIDE,
            user_id=user_id,
            entity_id=override_id,
            payload={
                "starts_at": iso(override.starts_at),
                "previous_ends_at": iso(previous_ends_at),
                "ends_at": iso(now),
                "reason": reason,
                "revoked_by_user_id": str(admin_user_id) if admin_user_id is not None else None,
            },
        )

    await invalidate_billing_status(user_id)
    logger.info("billing_admin_override_revoked", override_id=str(override_id), user_id=str(user_id))
    return CommandSuccess(
        AdminOverrideRevoked(override_id=override_id, already_revoked=False, ends_at=now)
    )
