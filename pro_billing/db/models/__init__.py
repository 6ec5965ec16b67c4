from pro_billing.db.models.billing_entitlement_overrides import BillingEntitlementOverride
from pro_billing.db.models.billing_events import BillingEvent
from pro_billing.db.models.billing_pending_entitlement_grants import BillingPendingEntitlementGrant
from pro_billing.db.models.billing_promotion_redemptions import BillingPromotionRedemption
from pro_billing.db.models.billing_promotions import BillingPromotion
from pro_billing.db.models.billing_subscriptions import BillingSubscription
from pro_billing.db.models.billing_trial_uses import BillingTrialUse

__all__ = [
    "BillingEntitlementOverride",
    "BillingEvent",
    "BillingPendingEntitlementGrant",
    "BillingPromotion",
    "BillingPromotionRedemption",
    "BillingSubscription",
    "BillingTrialUse",
]
