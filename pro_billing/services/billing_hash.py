from __future__ import annotations

import hashlib
import hmac
import re

from pro_billing.billing.errors import BillingHashSecretMissingError
from pro_billing.core.config import Settings, get_settings

_PROMO_NORMALIZE_PATTERN = re.compile(r"[\s-]+")
PROMO_CODE_PREFIX_LENGTH = 4


def normalize_promo_code(raw_code: str) -> str:
    normalized = raw_code.strip().upper()
    return _PROMO_NORMALIZE_PATTERN.sub("", normalized)


def normalize_email(raw_email: str) -> str:
    return raw_email.strip().lower()


def hmac_hash(*, secret: str, value: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        value.encode("utf-8"),
        hashlib.sha256,
    )
    return digest.hexdigest()


def get_hash_secrets(settings: Settings | None = None) -> list[tuple[int, str]]:
    """Configured hash secrets as (version, secret), oldest version first.

    The legacy single secret is treated as version 1 unless an explicit
    version 1 is configured as well.
    """
    resolved = settings or get_settings()
    secrets_by_version: dict[int, str] = {}
    for version, secret in resolved.billing_hash_secrets.items():
        if int(version) <= 0 or not secret:
            continue
        secrets_by_version[int(version)] = secret

    legacy_secret = resolved.billing_hash_secret
    if legacy_secret and 1 not in secrets_by_version:
        secrets_by_version[1] = legacy_secret

    if not secrets_by_version:
        raise BillingHashSecretMissingError("no billing hash secret is configured")
    return sorted(secrets_by_version.items())


def get_latest_hash_secret(settings: Settings | None = None) -> tuple[int, str]:
    return get_hash_secrets(settings)[-1]


def _get_hash_secret(version: int, settings: Settings | None = None) -> str:
    for configured_version, secret in get_hash_secrets(settings):
        if configured_version == version:
            return secret
    raise BillingHashSecretMissingError(f"billing hash secret v{version} is not configured")


def hash_promo_code(
    raw_code: str,
    *,
    version: int | None = None,
    settings: Settings | None = None,
) -> tuple[int, str]:
    if version is None:
        version, secret = get_latest_hash_secret(settings)
    else:
        secret = _get_hash_secret(version, settings)
    return version, hmac_hash(secret=secret, value=normalize_promo_code(raw_code))


def hash_email(
    raw_email: str,
    *,
    version: int | None = None,
    settings: Settings | None = None,
) -> tuple[int, str]:
    if version is None:
        version, secret = get_latest_hash_secret(settings)
    else:
        secret = _get_hash_secret(version, settings)
    return version, hmac_hash(secret=secret, value=normalize_email(raw_email))


def hash_promo_code_all_versions(
    raw_code: str,
    *,
    settings: Settings | None = None,
) -> list[str]:
    normalized = normalize_promo_code(raw_code)
    return [hmac_hash(secret=secret, value=normalized) for _, secret in get_hash_secrets(settings)]


def hash_email_all_versions(
    raw_email: str,
    *,
    settings: Settings | None = None,
) -> list[str]:
    normalized = normalize_email(raw_email)
    return [hmac_hash(secret=secret, value=normalized) for _, secret in get_hash_secrets(settings)]


def get_promo_code_prefix(raw_code: str, length: int = PROMO_CODE_PREFIX_LENGTH) -> str:
    return normalize_promo_code(raw_code)[: max(0, length)]
