from __future__ import annotations

import secrets

from pro_billing.billing.constants import PROMO_CODE_ALPHABET, PROMO_CODE_LENGTH


def generate_promo_code(*, length: int = PROMO_CODE_LENGTH) -> str:
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(PROMO_CODE_ALPHABET) for _ in range(length))
