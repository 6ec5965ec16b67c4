from __future__ import annotations

import pytest
from sqlalchemy import text

from pro_billing.core.integration_db_safety import assert_safe_integration_db
from pro_billing.db.session import engine

TRUNCATE_TABLES = (
    "billing_promotion_redemptions",
    "billing_promotions",
    "billing_entitlement_overrides",
    "billing_pending_entitlement_grants",
    "billing_trial_uses",
    "billing_subscriptions",
    "billing_events",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture(scope="session", autouse=True)
def guard_integration_db_target() -> None:
    assert_safe_integration_db(str(engine.url))


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Dispose pooled connections between tests to avoid cross-event-loop asyncpg reuse.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            schema_ready = await conn.scalar(text("SELECT to_regclass('billing_events')"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")
    if schema_ready is None:  # pragma: no cover - environment-dependent
        pytest.skip("Billing schema is missing; run `alembic upgrade head` first")

    # TRUNCATE bypasses the row-level append-only trigger on billing_events.
    async with engine.begin() as conn:
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
