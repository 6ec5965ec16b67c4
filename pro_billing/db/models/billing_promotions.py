from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import BOOLEAN, CheckConstraint, DateTime, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from pro_billing.db.models.base import Base


class BillingPromotion(Base):
    __tablename__ = "billing_promotions"
    __table_args__ = (
        CheckConstraint(
            "(grant_duration_days IS NULL) <> (grant_fixed_ends_at IS NULL)",
            name="ck_billing_promotions_grant_exclusive",
        ),
        CheckConstraint(
            "max_redemptions IS NULL OR max_redemptions > 0",
            name="ck_billing_promotions_max_redemptions_positive",
        ),
        CheckConstraint(
            "redemption_count >= 0",
            name="ck_billing_promotions_redemption_count_non_negative",
        ),
        CheckConstraint(
            "per_user_max_redemptions = 1",
            name="ck_billing_promotions_per_user_max_is_one",
        ),
        Index("idx_billing_promotions_active_valid", "is_active", "valid_from", "valid_to"),
        Index("idx_billing_promotions_prefix", "code_prefix"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    hash_version: Mapped[int] = mapped_column(Integer, nullable=False)
    code_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    code_prefix: Mapped[str | None] = mapped_column(String(16), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    entitlement_key: Mapped[str] = mapped_column(
        String(50), nullable=False, server_default=text("'pro_access'")
    )
    grant_duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    grant_fixed_ends_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=text("true"))
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_redemptions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    per_user_max_redemptions: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("1")
    )
    redemption_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_by_user_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
