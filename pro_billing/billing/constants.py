PLAN_KEY_PRO = "pro"
PRO_ACCESS_ENTITLEMENT_KEY = "pro_access"

PROMO_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PROMO_CODE_LENGTH = 10
PROMO_CODE_MAX_GENERATION_ATTEMPTS = 5
PROMO_PER_USER_MAX_REDEMPTIONS = 1

MAINTENANCE_BATCH_LIMIT = 500

TRIAL_EXPIRING_SOON_MARKER_PROVIDER = "system"
