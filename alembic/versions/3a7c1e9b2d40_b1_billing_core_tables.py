"""b1_billing_core_tables

Revision ID: 3a7c1e9b2d40
Revises:
Create Date: 2026-10-12 09:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "3a7c1e9b2d40"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "billing_subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("plan_key", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("trial_starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('trialing','active','ended')", name="ck_billing_subscriptions_status"),
        sa.CheckConstraint("trial_ends_at > trial_starts_at", name="ck_billing_subscriptions_trial_window"),
        sa.CheckConstraint(
            "current_period_ends_at > current_period_starts_at",
            name="ck_billing_subscriptions_period_window",
        ),
        sa.UniqueConstraint("user_id", name="uq_billing_subscriptions_user_id"),
    )
    op.create_index("idx_billing_subscriptions_trial_ends_at", "billing_subscriptions", ["trial_ends_at"])
    op.create_index(
        "idx_billing_subscriptions_current_period_ends_at",
        "billing_subscriptions",
        ["current_period_ends_at"],
    )
    op.create_index("idx_billing_subscriptions_ended_at", "billing_subscriptions", ["ended_at"])

    op.create_table(
        "billing_trial_uses",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "billing_entitlement_overrides",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("entitlement_key", sa.String(50), nullable=False, server_default=sa.text("'pro_access'")),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source_type", sa.String(30), nullable=False),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("granted_by_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("ends_at > starts_at", name="ck_billing_entitlement_overrides_window"),
        sa.CheckConstraint(
            "source_type IN ('admin','promotion','pending_grant','migration','system')",
            name="ck_billing_entitlement_overrides_source_type",
        ),
    )
    op.create_index(
        "idx_billing_overrides_user_entitlement",
        "billing_entitlement_overrides",
        ["user_id", "entitlement_key"],
    )
    op.create_index(
        "idx_billing_overrides_user_entitlement_range",
        "billing_entitlement_overrides",
        ["user_id", "entitlement_key", "starts_at", "ends_at"],
    )

    op.create_table(
        "billing_promotions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("hash_version", sa.Integer(), nullable=False),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("code_prefix", sa.String(16), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("entitlement_key", sa.String(50), nullable=False, server_default=sa.text("'pro_access'")),
        sa.Column("grant_duration_days", sa.Integer(), nullable=True),
        sa.Column("grant_fixed_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_redemptions", sa.Integer(), nullable=True),
        sa.Column("per_user_max_redemptions", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("redemption_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(grant_duration_days IS NULL) <> (grant_fixed_ends_at IS NULL)",
            name="ck_billing_promotions_grant_exclusive",
        ),
        sa.CheckConstraint(
            "max_redemptions IS NULL OR max_redemptions > 0",
            name="ck_billing_promotions_max_redemptions_positive",
        ),
        sa.CheckConstraint(
            "redemption_count >= 0",
            name="ck_billing_promotions_redemption_count_non_negative",
        ),
        sa.CheckConstraint("per_user_max_redemptions = 1", name="ck_billing_promotions_per_user_max_is_one"),
        sa.UniqueConstraint("code_hash", name="uq_billing_promotions_code_hash"),
    )
    op.create_index(
        "idx_billing_promotions_active_valid",
        "billing_promotions",
        ["is_active", "valid_from", "valid_to"],
    )
    op.create_index("idx_billing_promotions_prefix", "billing_promotions", ["code_prefix"])

    op.create_table(
        "billing_promotion_redemptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("promotion_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["promotion_id"], ["billing_promotions.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "promotion_id",
            "user_id",
            name="uq_billing_promotion_redemptions_promotion_user",
        ),
    )
    op.create_index(
        "idx_billing_promotion_redemptions_user",
        "billing_promotion_redemptions",
        ["user_id"],
    )

    op.create_table(
        "billing_pending_entitlement_grants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("hash_version", sa.Integer(), nullable=False),
        sa.Column("email_hash", sa.String(64), nullable=False),
        sa.Column("entitlement_key", sa.String(50), nullable=False, server_default=sa.text("'pro_access'")),
        sa.Column("grant_duration_days", sa.Integer(), nullable=True),
        sa.Column("grant_fixed_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("claim_valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claim_valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_by_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("claim_source", sa.String(50), nullable=True),
        sa.Column("created_by_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(grant_duration_days IS NULL) <> (grant_fixed_ends_at IS NULL)",
            name="ck_billing_pending_grants_grant_exclusive",
        ),
        sa.CheckConstraint(
            "claim_source IS NULL OR claim_source IN ('auto_on_verified_session','manual_claim')",
            name="ck_billing_pending_grants_claim_source",
        ),
    )
    op.create_index(
        "idx_billing_pending_grants_email_active",
        "billing_pending_entitlement_grants",
        ["email_hash", "is_active", "claimed_at"],
    )
    op.create_index(
        "idx_billing_pending_grants_claim_valid_to",
        "billing_pending_entitlement_grants",
        ["claim_valid_to"],
    )

    op.create_table(
        "billing_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider", sa.String(50), nullable=True),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("external_event_id", sa.String(255), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("request_id", sa.String(100), nullable=True),
        sa.Column("idempotency_key", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("source IN ('system','admin','provider')", name="ck_billing_events_source"),
        sa.CheckConstraint(
            "entity_type IN ('subscription','override','promotion','pending_grant','trial_use')",
            name="ck_billing_events_entity_type",
        ),
        sa.UniqueConstraint(
            "provider",
            "external_event_id",
            name="uq_billing_events_provider_external_event_id",
        ),
    )
    op.create_index("idx_billing_events_user", "billing_events", ["user_id"])
    op.create_index(
        "idx_billing_events_entity_type",
        "billing_events",
        ["entity_type", "entity_id", "type"],
    )


def downgrade() -> None:
    op.drop_index("idx_billing_events_entity_type", table_name="billing_events")
    op.drop_index("idx_billing_events_user", table_name="billing_events")
    op.drop_table("billing_events")

    op.drop_index(
        "idx_billing_pending_grants_claim_valid_to",
        table_name="billing_pending_entitlement_grants",
    )
    op.drop_index(
        "idx_billing_pending_grants_email_active",
        table_name="billing_pending_entitlement_grants",
    )
    op.drop_table("billing_pending_entitlement_grants")

    op.drop_index("idx_billing_promotion_redemptions_user", table_name="billing_promotion_redemptions")
    op.drop_table("billing_promotion_redemptions")

    op.drop_index("idx_billing_promotions_prefix", table_name="billing_promotions")
    op.drop_index("idx_billing_promotions_active_valid", table_name="billing_promotions")
    op.drop_table("billing_promotions")

    op.drop_index(
        "idx_billing_overrides_user_entitlement_range",
        table_name="billing_entitlement_overrides",
    )
    op.drop_index("idx_billing_overrides_user_entitlement", table_name="billing_entitlement_overrides")
    op.drop_table("billing_entitlement_overrides")

    op.drop_table("billing_trial_uses")

    op.drop_index("idx_billing_subscriptions_ended_at", table_name="billing_subscriptions")
    op.drop_index(
        "idx_billing_subscriptions_current_period_ends_at",
        table_name="billing_subscriptions",
    )
    op.drop_index("idx_billing_subscriptions_trial_ends_at", table_name="billing_subscriptions")
    op.drop_table("billing_subscriptions")
