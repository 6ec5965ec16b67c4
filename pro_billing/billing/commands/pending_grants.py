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
from pro_billing.billing.constants import PRO_ACCESS_ENTITLEMENT_KEY
from pro_billing.billing.errors import BillingHashSecretMissingError
from pro_billing.billing.events import append_billing_event
from pro_billing.billing.grants import compute_grant_window, has_exactly_one_grant_shape
from pro_billing.billing.types import (
    BillingEntityType,
    BillingErrorCode,
    BillingEventSource,
    BillingEventType,
    ClaimSource,
    CommandResult,
    CommandSuccess,
    OverrideSourceType,
    PendingGrantCreated,
    PendingGrantsClaimed,
    PendingGrantToggled,
)
from pro_billing.db.models.billing_pending_entitlement_grants import (
    BillingPendingEntitlementGrant,
)
from pro_billing.db.repo.billing_pending_grants_repo import BillingPendingGrantsRepo
from pro_billing.db.session import SessionLocal
from pro_billing.services.billing_cache import invalidate_billing_status
from pro_billing.services.billing_hash import hash_email, hash_email_all_versions


async def create_pending_entitlement_grant(
    *,
    email: str,
    grant_duration_days: int | None = None,
    grant_fixed_ends_at: datetime | None = None,
    claim_valid_from: datetime | None = None,
    claim_valid_to: datetime | None = None,
    created_by_user_id: UUID | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[PendingGrantCreated]:
    now = now_utc or utc_now()
    if not has_exactly_one_grant_shape(
        grant_duration_days=grant_duration_days,
        grant_fixed_ends_at=grant_fixed_ends_at,
    ):
        return reject(
            BillingErrorCode.INVALID_GRANT,
            "Set either a grant duration or a fixed end date.",
        )
    try:
        hash_version, email_hash = hash_email(email)
    except BillingHashSecretMissingError:
        return reject(
            BillingErrorCode.HASH_SECRET_MISSING,
            "Billing hash secret is not configured.",
        )

    async with SessionLocal.begin() as session:
        grant = await BillingPendingGrantsRepo.create(
            session,
            grant=BillingPendingEntitlementGrant(
                hash_version=hash_version,
                email_hash=email_hash,
                entitlement_key=PRO_ACCESS_ENTITLEMENT_KEY,
                grant_duration_days=grant_duration_days,
                grant_fixed_ends_at=grant_fixed_ends_at,
                is_active=True,
                claim_valid_from=claim_valid_from,
                claim_valid_to=claim_valid_to,
                created_by_user_id=created_by_user_id,
                created_at=now,
                updated_at=now,
            ),
        )
        await append_billing_event(
            session,
            source=BillingEventSource.ADMIN,
            event_type=BillingEventType.PENDING_GRANT_CREATED,
            entity_type=BillingEntityType.PENDING_GRANT,
            user_id=created_by_user_id,
            entity_id=grant.id,
            payload={
                "hash_version": hash_version,
                "grant_duration_days": grant_duration_days,
                "grant_fixed_ends_at": iso(grant_fixed_ends_at),
                "claim_valid_to": iso(claim_valid_to),
            },
        )

    logger.info("billing_pending_grant_created", grant_id=str(grant.id), hash_version=hash_version)
    return CommandSuccess(PendingGrantCreated(grant_id=grant.id, hash_version=hash_version))


async def _set_pending_grant_active(
    *,
    grant_id: UUID,
    is_active: bool,
    admin_user_id: UUID | None,
    now_utc: datetime | None,
) -> CommandResult[PendingGrantToggled]:
    now = now_utc or utc_now()
    async with SessionLocal.begin() as session:
        grant = await BillingPendingGrantsRepo.get_by_id_for_update(session, grant_id)
        if grant is None:
            return reject(
                BillingErrorCode.NOT_FOUND,
                "Pending grant not found.",
                grant_id=str(grant_id),
            )
        if grant.is_active == is_active:
            return CommandSuccess(
                PendingGrantToggled(
                    grant_id=grant_id,
                    is_active=is_active,
                    already_enabled=is_active,
                    already_disabled=not is_active,
                )
            )

        grant.is_active = is_active
        grant.updated_at = now
        await append_billing_event(
            session,
            source=BillingEventSource.ADMIN,
            event_type=(
                BillingEventType.PENDING_GRANT_ENABLED
                if is_active
                else BillingEventType.PENDING_GRANT_DISABLED
            ),
            entity_type=BillingEntityType.PENDING_GRANT,
            user_id=admin_user_id,
            entity_id=grant_id,
            payload={},
        )

    logger.info("billing_pending_grant_toggled", grant_id=str(grant_id), is_active=is_active)
    return CommandSuccess(PendingGrantToggled(grant_id=grant_id, is_active=is_active))


async def enable_pending_entitlement_grant(
    *,
    grant_id: UUID,
    admin_user_id: UUID | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[PendingGrantToggled]:
    return await _set_pending_grant_active(
        grant_id=grant_id,
        is_active=True,
        admin_user_id=admin_user_id,
        now_utc=now_utc,
    )


async def disable_pending_entitlement_grant(
    *,
    grant_id: UUID,
    admin_user_id: UUID | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[PendingGrantToggled]:
    return await _set_pending_grant_active(
        grant_id=grant_id,
        is_active=False,
        admin_user_id=admin_user_id,
        now_utc=now_utc,
    )


async def claim_pending_entitlement_grants_for_user(
    *,
    user_id: UUID,
    email: str,
    claim_source: ClaimSource = ClaimSource.AUTO_ON_VERIFIED_SESSION,
    now_utc: datetime | None = None,
) -> CommandResult[PendingGrantsClaimed]:
    now = now_utc or utc_now()
    email_hashes = hash_email_all_versions(email)

    claimed_count = 0
    overrides_created = 0
    no_extension_count = 0
    async with SessionLocal.begin() as session:
        grants = await BillingPendingGrantsRepo.list_claimable_for_update(
            session,
            email_hashes=email_hashes,
            entitlement_key=PRO_ACCESS_ENTITLEMENT_KEY,
            now_utc=now,
        )
        if not grants:
            return CommandSuccess(
                PendingGrantsClaimed(claimed_count=0, overrides_created=0, no_extension_count=0)
            )

        evaluation = await evaluate_for_stacking(
            session,
            user_id=user_id,
            now_utc=now,
        )
        current_pro_until = evaluation.pro_until

        for grant in grants:
            claimed = await BillingPendingGrantsRepo.try_claim(
                session,
                grant_id=grant.id,
                user_id=user_id,
                claim_source=claim_source.value,
                now_utc=now,
            )
            if not claimed:
                continue
            claimed_count += 1

            window = compute_grant_window(
                now_utc=now,
                current_pro_until=current_pro_until,
                grant_duration_days=grant.grant_duration_days,
                grant_fixed_ends_at=grant.grant_fixed_ends_at,
            )
            payload: dict[str, object] = {"claim_source": claim_source.value}
            if window.no_extension:
                no_extension_count += 1
                payload["no_extension"] = True
            else:
                override = await create_override(
                    session,
                    user_id=user_id,
                    window=window,
                    source_type=OverrideSourceType.PENDING_GRANT,
                    source_id=grant.id,
                    now_utc=now,
                    metadata={"claim_source": claim_source.value},
                )
                overrides_created += 1
                payload.update(
                    {
                        "override_id": str(override.id),
                        "starts_at": iso(window.starts_at),
                        "ends_at": iso(window.ends_at),
                    }
                )
                if current_pro_until is None or window.ends_at > current_pro_until:
                    current_pro_until = window.ends_at

            await append_billing_event(
                session,
                source=BillingEventSource.SYSTEM,
                event_type=BillingEventType.PENDING_GRANT_CLAIMED,
                entity_type=BillingEntityType.PENDING_GRANT,
                user_id=user_id,
                entity_id=grant.id,
                payload=payload,
            )

    if claimed_count > 0:
        await invalidate_billing_status(user_id)
        logger.info(
            "billing_pending_grants_claimed",
            user_id=str(user_id),
            claimed_count=claimed_count,
            overrides_created=overrides_created,
            no_extension_count=no_extension_count,
        )
    return CommandSuccess(
        PendingGrantsClaimed(
            claimed_count=claimed_count,
            overrides_created=overrides_created,
            no_extension_count=no_extension_count,
            pro_until=current_pro_until,
        )
    )
