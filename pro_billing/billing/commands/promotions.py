from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from pro_billing.billing.codes import generate_promo_code
from pro_billing.billing.commands.common import (
    create_override,
    evaluate_for_stacking,
    iso,
    logger,
    reject,
    utc_now,
)
from pro_billing.billing.constants import (
    PRO_ACCESS_ENTITLEMENT_KEY,
    PROMO_CODE_MAX_GENERATION_ATTEMPTS,
    PROMO_PER_USER_MAX_REDEMPTIONS,
)
from pro_billing.billing.events import append_billing_event
from pro_billing.billing.grants import compute_grant_window, has_exactly_one_grant_shape
from pro_billing.billing.types import (
    BillingEntityType,
    BillingErrorCode,
    BillingEventSource,
    BillingEventType,
    CommandResult,
    CommandSuccess,
    OverrideSourceType,
    PromotionCreated,
    PromotionRedeemed,
    PromotionToggled,
)
from pro_billing.db.models.billing_promotions import BillingPromotion
from pro_billing.db.repo.billing_promotions_repo import BillingPromotionsRepo
from pro_billing.db.session import SessionLocal
from pro_billing.services.billing_cache import invalidate_billing_status
from pro_billing.services.billing_hash import (
    get_latest_hash_secret,
    get_promo_code_prefix,
    hash_promo_code,
    hash_promo_code_all_versions,
)


def is_promotion_redeemable(promotion: BillingPromotion, *, now_utc: datetime) -> bool:
    if not promotion.is_active:
        return False
    if promotion.valid_from is not None and promotion.valid_from > now_utc:
        return False
    if promotion.valid_to is not None and promotion.valid_to <= now_utc:
        return False
    return True


async def redeem_promotion_for_user(
    *,
    user_id: UUID,
    code: str,
    now_utc: datetime | None = None,
) -> CommandResult[PromotionRedeemed]:
    now = now_utc or utc_now()
    code_hashes = hash_promo_code_all_versions(code)

    async with SessionLocal.begin() as session:
        promotion = await BillingPromotionsRepo.get_by_code_hashes_for_update(session, code_hashes)
        if promotion is None:
            return reject(
                BillingErrorCode.PROMO_NOT_FOUND,
                "This code is not valid.",
                user_id=str(user_id),
            )
        if not is_promotion_redeemable(promotion, now_utc=now):
            return reject(
                BillingErrorCode.PROMO_INACTIVE,
                "This code is no longer active.",
                user_id=str(user_id),
                promotion_id=str(promotion.id),
            )
        if (
            promotion.max_redemptions is not None
            and promotion.redemption_count >= promotion.max_redemptions
        ):
            return reject(
                BillingErrorCode.PROMO_MAX_REDEMPTIONS,
                "This code has reached its redemption limit.",
                user_id=str(user_id),
                promotion_id=str(promotion.id),
            )

        redemption_id = await BillingPromotionsRepo.try_create_redemption(
            session,
            promotion_id=promotion.id,
            user_id=user_id,
            now_utc=now,
        )
        if redemption_id is None:
            logger.info(
                "billing_promotion_already_redeemed",
                user_id=str(user_id),
                promotion_id=str(promotion.id),
            )
            return CommandSuccess(PromotionRedeemed(promotion_id=promotion.id, already_redeemed=True))

        promotion.redemption_count += 1
        promotion.updated_at = now

        evaluation = await evaluate_for_stacking(
            session,
            user_id=user_id,
            now_utc=now,
        )
        window = compute_grant_window(
            now_utc=now,
            current_pro_until=evaluation.pro_until,
            grant_duration_days=promotion.grant_duration_days,
            grant_fixed_ends_at=promotion.grant_fixed_ends_at,
        )

        override_id: UUID | None = None
        if window.no_extension:
            payload = {
                "promotion_id": str(promotion.id),
                "redemption_id": str(redemption_id),
                "no_extension": True,
            }
        else:
            override = await create_override(
                session,
                user_id=user_id,
                window=window,
                source_type=OverrideSourceType.PROMOTION,
                source_id=promotion.id,
                now_utc=now,
                reason=promotion.name,
                metadata={
                    "redemption_id": str(redemption_id),
                    "code_prefix": promotion.code_prefix,
                },
            )
            override_id = override.id
            payload = {
                "promotion_id": str(promotion.id),
                "redemption_id": str(redemption_id),
                "override_id": str(override_id),
                "starts_at": iso(window.starts_at),
                "ends_at": iso(window.ends_at),
            }

        await append_billing_event(
            session,
            source=BillingEventSource.SYSTEM,
            event_type=BillingEventType.PROMOTION_REDEEMED,
            entity_type=BillingEntityType.PROMOTION,
            user_id=user_id,
            entity_id=promotion.id,
            payload=payload,
        )
        promotion_id = promotion.id

    await invalidate_billing_status(user_id)
    logger.info(
        "billing_promotion_redeemed",
        user_id=str(user_id),
        promotion_id=str(promotion_id),
        no_extension=window.no_extension,
        ends_at=iso(window.ends_at),
    )
    return CommandSuccess(
        PromotionRedeemed(
            promotion_id=promotion_id,
            redemption_id=redemption_id,
            override_id=override_id,
            starts_at=window.starts_at,
            ends_at=window.ends_at,
            no_extension=window.no_extension,
        )
    )


async def create_promotion(
    *,
    grant_duration_days: int | None = None,
    grant_fixed_ends_at: datetime | None = None,
    name: str | None = None,
    description: str | None = None,
    valid_from: datetime | None = None,
    valid_to: datetime | None = None,
    max_redemptions: int | None = None,
    per_user_max_redemptions: int = PROMO_PER_USER_MAX_REDEMPTIONS,
    created_by_user_id: UUID | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[PromotionCreated]:
    now = now_utc or utc_now()
    if per_user_max_redemptions != PROMO_PER_USER_MAX_REDEMPTIONS:
        return reject(
            BillingErrorCode.INVALID_PER_USER_LIMIT,
            "Promotions currently allow exactly one redemption per user.",
            per_user_max_redemptions=per_user_max_redemptions,
        )
    if not has_exactly_one_grant_shape(
        grant_duration_days=grant_duration_days,
        grant_fixed_ends_at=grant_fixed_ends_at,
    ):
        return reject(
            BillingErrorCode.INVALID_GRANT,
            "Set either a grant duration or a fixed end date.",
        )
    if max_redemptions is not None and max_redemptions <= 0:
        return reject(
            BillingErrorCode.INVALID_MAX_REDEMPTIONS,
            "The redemption limit must be positive.",
            max_redemptions=max_redemptions,
        )

    hash_version, _ = get_latest_hash_secret()
    for attempt in range(1, PROMO_CODE_MAX_GENERATION_ATTEMPTS + 1):
        code = generate_promo_code()
        _, code_hash = hash_promo_code(code, version=hash_version)
        code_prefix = get_promo_code_prefix(code)
        try:
            async with SessionLocal.begin() as session:
                promotion = await BillingPromotionsRepo.create(
                    session,
                    promotion=BillingPromotion(
                        hash_version=hash_version,
                        code_hash=code_hash,
                        code_prefix=code_prefix,
                        name=name,
                        description=description,
                        entitlement_key=PRO_ACCESS_ENTITLEMENT_KEY,
                        grant_duration_days=grant_duration_days,
                        grant_fixed_ends_at=grant_fixed_ends_at,
                        is_active=True,
                        valid_from=valid_from,
                        valid_to=valid_to,
                        max_redemptions=max_redemptions,
                        per_user_max_redemptions=per_user_max_redemptions,
                        redemption_count=0,
                        created_by_user_id=created_by_user_id,
                        created_at=now,
                        updated_at=now,
                    ),
                )
                await append_billing_event(
                    session,
                    source=BillingEventSource.ADMIN,
                    event_type=BillingEventType.PROMOTION_CREATED,
                    entity_type=BillingEntityType.PROMOTION,
                    user_id=created_by_user_id,
                    entity_id=promotion.id,
                    payload={
                        "code_prefix": code_prefix,
                        "grant_duration_days": grant_duration_days,
                        "grant_fixed_ends_at": iso(grant_fixed_ends_at),
                        "max_redemptions": max_redemptions,
                    },
                )
        except IntegrityError:
            logger.warning("billing_promotion_code_collision", attempt=attempt)
            continue

        logger.info(
            "billing_promotion_created",
            promotion_id=str(promotion.id),
            code_prefix=code_prefix,
        )
        return CommandSuccess(
            PromotionCreated(promotion_id=promotion.id, code=code, code_prefix=code_prefix)
        )

    return reject(
        BillingErrorCode.CODE_GENERATION_FAILED,
        "Could not generate a unique promotion code.",
        attempts=PROMO_CODE_MAX_GENERATION_ATTEMPTS,
    )


async def _set_promotion_active(
    *,
    promotion_id: UUID,
    is_active: bool,
    admin_user_id: UUID | None,
    now_utc: datetime | None,
) -> CommandResult[PromotionToggled]:
    now = now_utc or utc_now()
    async with SessionLocal.begin() as session:
        promotion = await BillingPromotionsRepo.get_by_id_for_update(session, promotion_id)
        if promotion is None:
            return reject(
                BillingErrorCode.NOT_FOUND,
                "Promotion not found.",
                promotion_id=str(promotion_id),
            )
        if promotion.is_active == is_active:
            return CommandSuccess(
                PromotionToggled(
                    promotion_id=promotion_id,
                    is_active=is_active,
                    already_enabled=is_active,
                    already_disabled=not is_active,
                )
            )

        promotion.is_active = is_active
        promotion.updated_at = now
        await append_billing_event(
            session,
            source=BillingEventSource.ADMIN,
            event_type=(
                BillingEventType.PROMOTION_ENABLED
                if is_active
                else BillingEventType.PROMOTION_DISABLED
            ),
            entity_type=BillingEntityType.PROMOTION,
            user_id=admin_user_id,
            entity_id=promotion_id,
            payload={},
        )

    logger.info("billing_promotion_toggled", promotion_id=str(promotion_id), is_active=is_active)
    return CommandSuccess(PromotionToggled(promotion_id=promotion_id, is_active=is_active))


async def enable_promotion(
    *,
    promotion_id: UUID,
    admin_user_id: UUID | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[PromotionToggled]:
    return await _set_promotion_active(
        promotion_id=promotion_id,
        is_active=True,
        admin_user_id=admin_user_id,
        now_utc=now_utc,
    )


async def disable_promotion(
    *,
    promotion_id: UUID,
    admin_user_id: UUID | None = None,
    now_utc: datetime | None = None,
) -> CommandResult[PromotionToggled]:
    return await _set_promotion_active(
        promotion_id=promotion_id,
        is_active=False,
        admin_user_id=admin_user_id,
        now_utc=now_utc,
    )
