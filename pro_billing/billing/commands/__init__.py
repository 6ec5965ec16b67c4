from __future__ import annotations

from .cancellation import resume_subscription, schedule_cancel_at_period_end
from .overrides import extend_admin_override, grant_admin_override, revoke_admin_override
from .pending_grants import (
    claim_pending_entitlement_grants_for_user,
    create_pending_entitlement_grant,
    disable_pending_entitlement_grant,
    enable_pending_entitlement_grant,
)
from .promotions import (
    create_promotion,
    disable_promotion,
    enable_promotion,
    redeem_promotion_for_user,
)
from .trial import start_trial_for_user

__all__ = [
    "claim_pending_entitlement_grants_for_user",
    "create_pending_entitlement_grant",
    "create_promotion",
    "disable_pending_entitlement_grant",
    "disable_promotion",
    "enable_pending_entitlement_grant",
    "enable_promotion",
    "extend_admin_override",
    "grant_admin_override",
    "redeem_promotion_for_user",
    "resume_subscription",
    "revoke_admin_override",
    "schedule_cancel_at_period_end",
    "start_trial_for_user",
]
