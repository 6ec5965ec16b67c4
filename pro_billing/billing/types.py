from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

PayloadT = TypeVar("PayloadT")


class SubscriptionStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    ENDED = "ended"


class EntitlementSource(str, Enum):
    INTERNAL_BYPASS = "internal_bypass"
    SUBSCRIPTION = "subscription"
    TRIAL = "trial"
    ADMIN_OVERRIDE = "admin_override"
    PENDING_GRANT = "pending_grant"
    PROMOTION = "promotion"
    SYSTEM = "system"
    MIGRATION = "migration"


SOURCE_PRIORITY: dict[EntitlementSource, int] = {
    EntitlementSource.INTERNAL_BYPASS: 0,
    EntitlementSource.SUBSCRIPTION: 1,
    EntitlementSource.TRIAL: 2,
    EntitlementSource.ADMIN_OVERRIDE: 3,
    EntitlementSource.PENDING_GRANT: 4,
    EntitlementSource.PROMOTION: 5,
    EntitlementSource.SYSTEM: 6,
    EntitlementSource.MIGRATION: 7,
}


class OverrideSourceType(str, Enum):
    ADMIN = "admin"
    PROMOTION = "promotion"
    PENDING_GRANT = "pending_grant"
    MIGRATION = "migration"
    SYSTEM = "system"


class BillingEventSource(str, Enum):
    SYSTEM = "system"
    ADMIN = "admin"
    PROVIDER = "provider"


class BillingEntityType(str, Enum):
    SUBSCRIPTION = "subscription"
    OVERRIDE = "override"
    PROMOTION = "promotion"
    PENDING_GRANT = "pending_grant"
    TRIAL_USE = "trial_use"


class BillingEventType(str, Enum):
    TRIAL_STARTED = "trial_started"
    CANCEL_SCHEDULED = "cancel_scheduled"
    CANCEL_REVERTED = "cancel_reverted"
    SUBSCRIPTION_ENDED = "subscription_ended"
    OVERRIDE_GRANTED = "override_granted"
    OVERRIDE_EXTENDED = "override_extended"
    OVERRIDE_REVOKED = "override_revoked"
    PROMOTION_CREATED = "promotion_created"
    PROMOTION_ENABLED = "promotion_enabled"
    PROMOTION_DISABLED = "promotion_disabled"
    PROMOTION_REDEEMED = "promotion_redeemed"
    PENDING_GRANT_CREATED = "pending_grant_created"
    PENDING_GRANT_ENABLED = "pending_grant_enabled"
    PENDING_GRANT_DISABLED = "pending_grant_disabled"
    PENDING_GRANT_CLAIMED = "pending_grant_claimed"
    TRIAL_EXPIRING_SOON_NOTIFIED = "trial_expiring_soon_notified"


class ClaimSource(str, Enum):
    AUTO_ON_VERIFIED_SESSION = "auto_on_verified_session"
    MANUAL_CLAIM = "manual_claim"


class BillingErrorCode(str, Enum):
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    ALREADY_PRO = "ALREADY_PRO"
    TRIAL_ALREADY_USED = "TRIAL_ALREADY_USED"
    NOT_FOUND = "NOT_FOUND"
    SUBSCRIPTION_ENDED = "SUBSCRIPTION_ENDED"
    NOT_ACTIVE = "NOT_ACTIVE"
    PROMO_NOT_FOUND = "PROMO_NOT_FOUND"
    PROMO_INACTIVE = "PROMO_INACTIVE"
    PROMO_MAX_REDEMPTIONS = "PROMO_MAX_REDEMPTIONS"
    INVALID_PER_USER_LIMIT = "INVALID_PER_USER_LIMIT"
    INVALID_GRANT = "INVALID_GRANT"
    INVALID_MAX_REDEMPTIONS = "INVALID_MAX_REDEMPTIONS"
    CODE_GENERATION_FAILED = "CODE_GENERATION_FAILED"
    HASH_SECRET_MISSING = "HASH_SECRET_MISSING"
    INVALID_STATE = "INVALID_STATE"


@dataclass(frozen=True, slots=True)
class EntitlementInterval:
    source: EntitlementSource
    starts_at: datetime
    ends_at: datetime
    source_id: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class EntitlementEvaluation:
    is_pro: bool
    pro_until: datetime | None
    effective_source: EntitlementSource | None
    sources: list[EntitlementInterval] = field(default_factory=list)
    next_pro_starts_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class GrantWindow:
    starts_at: datetime
    ends_at: datetime
    no_extension: bool


@dataclass(slots=True)
class SubscriptionSnapshot:
    id: UUID
    status: SubscriptionStatus
    plan_key: str
    trial_starts_at: datetime | None
    trial_ends_at: datetime | None
    current_period_starts_at: datetime | None
    current_period_ends_at: datetime | None
    cancel_at_period_end: bool
    canceled_at: datetime | None
    ended_at: datetime | None


@dataclass(slots=True)
class BillingStatus:
    evaluation: EntitlementEvaluation
    subscription: SubscriptionSnapshot | None
    trial_eligible: bool


@dataclass(slots=True)
class CommandSuccess(Generic[PayloadT]):
    data: PayloadT

    @property
    def ok(self) -> bool:
        return True


@dataclass(slots=True)
class CommandFailure:
    code: BillingErrorCode
    error: str

    @property
    def ok(self) -> bool:
        return False


CommandResult = CommandSuccess[PayloadT] | CommandFailure


@dataclass(slots=True)
class TrialStarted:
    subscription_id: UUID
    trial_starts_at: datetime
    trial_ends_at: datetime


@dataclass(slots=True)
class CancelScheduled:
    already_scheduled: bool
    ends_at: datetime


@dataclass(slots=True)
class SubscriptionResumed:
    already_resumed: bool


@dataclass(slots=True)
class PromotionRedeemed:
    promotion_id: UUID
    already_redeemed: bool = False
    redemption_id: UUID | None = None
    override_id: UUID | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    no_extension: bool = False


@dataclass(slots=True)
class PromotionCreated:
    promotion_id: UUID
    code: str
    code_prefix: str


@dataclass(slots=True)
class PromotionToggled:
    promotion_id: UUID
    is_active: bool
    already_enabled: bool = False
    already_disabled: bool = False


@dataclass(slots=True)
class PendingGrantCreated:
    grant_id: UUID
    hash_version: int


@dataclass(slots=True)
class PendingGrantToggled:
    grant_id: UUID
    is_active: bool
    already_enabled: bool = False
    already_disabled: bool = False


@dataclass(slots=True)
class PendingGrantsClaimed:
    claimed_count: int
    overrides_created: int
    no_extension_count: int
    pro_until: datetime | None = None


@dataclass(slots=True)
class AdminOverrideApplied:
    override_id: UUID | None
    starts_at: datetime
    ends_at: datetime
    no_extension: bool = False


@dataclass(slots=True)
class AdminOverrideRevoked:
    override_id: UUID
    already_revoked: bool
    ends_at: datetime
