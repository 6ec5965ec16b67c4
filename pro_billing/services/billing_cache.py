from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import structlog
from redis.asyncio import Redis

from pro_billing.core.config import get_settings

logger = structlog.get_logger(__name__)

BILLING_STATUS_CACHE_KEY_PREFIX = "billing:status"
BILLING_STATUS_GENERATION_KEY_PREFIX = "billing:status-gen"
# Must outlive any cached status entry.
BILLING_STATUS_GENERATION_TTL_SECONDS = 7 * 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class CachedBillingStatus:
    """Cache lookup result.

    `generation` is the user's invalidation counter observed by the lookup, or
    None when Redis was unavailable. A write-back tagged with it is ignored by
    later reads once any command has invalidated the user in between.
    """

    payload: dict[str, Any] | None
    generation: int | None


def billing_status_cache_key(user_id: UUID) -> str:
    return f"{BILLING_STATUS_CACHE_KEY_PREFIX}:{user_id}"


def billing_status_generation_key(user_id: UUID) -> str:
    return f"{BILLING_STATUS_GENERATION_KEY_PREFIX}:{user_id}"


def _create_client() -> Redis:
    return Redis.from_url(get_settings().redis_url, decode_responses=True)


async def invalidate_billing_status(user_id: UUID) -> None:
    generation_key = billing_status_generation_key(user_id)
    redis_client: Redis | None = None
    try:
        redis_client = _create_client()
        await redis_client.incr(generation_key)
        await redis_client.expire(generation_key, BILLING_STATUS_GENERATION_TTL_SECONDS)
        await redis_client.delete(billing_status_cache_key(user_id))
    except Exception:
        logger.warning(
            "billing_status_cache_invalidation_failed",
            user_id=str(user_id),
            exc_info=True,
        )
    finally:
        if redis_client is not None:
            await redis_client.aclose()


def _parse_generation(raw_generation: str | None) -> int:
    try:
        return int(raw_generation) if raw_generation is not None else 0
    except ValueError:
        return 0


async def read_cached_billing_status(user_id: UUID) -> CachedBillingStatus:
    redis_client: Redis | None = None
    try:
        redis_client = _create_client()
        raw_value, raw_generation = await redis_client.mget(
            billing_status_cache_key(user_id),
            billing_status_generation_key(user_id),
        )
    except Exception:
        logger.warning("billing_status_cache_read_failed", user_id=str(user_id), exc_info=True)
        return CachedBillingStatus(payload=None, generation=None)
    finally:
        if redis_client is not None:
            await redis_client.aclose()

    generation = _parse_generation(raw_generation)
    if raw_value is None:
        return CachedBillingStatus(payload=None, generation=generation)
    try:
        entry = json.loads(raw_value)
    except ValueError:
        logger.warning("billing_status_cache_payload_invalid", user_id=str(user_id))
        return CachedBillingStatus(payload=None, generation=generation)

    if (
        not isinstance(entry, dict)
        or entry.get("generation") != generation
        or not isinstance(entry.get("status"), dict)
    ):
        # Written by a read that raced an invalidation, or malformed.
        return CachedBillingStatus(payload=None, generation=generation)
    return CachedBillingStatus(payload=entry["status"], generation=generation)


async def write_cached_billing_status(
    user_id: UUID,
    payload: dict[str, Any],
    *,
    generation: int,
    ttl_seconds: int,
) -> None:
    if ttl_seconds <= 0:
        return
    redis_client: Redis | None = None
    try:
        redis_client = _create_client()
        await redis_client.set(
            billing_status_cache_key(user_id),
            json.dumps({"generation": generation, "status": payload}, separators=(",", ":")),
            ex=ttl_seconds,
        )
    except Exception:
        logger.warning("billing_status_cache_write_failed", user_id=str(user_id), exc_info=True)
    finally:
        if redis_client is not None:
            await redis_client.aclose()
