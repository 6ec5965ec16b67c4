from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import BOOLEAN, CheckConstraint, DateTime, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from pro_billing.db.models.base import Base


class BillingPendingEntitlementGrant(Base):
    __tablename__ = "billing_pending_entitlement_grants"
    __table_args__ = (
        CheckConstraint(
            "(grant_duration_days IS NULL) <> (grant_fixed_ends_at IS NULL)",
            name="ck_billing_pending_grants_grant_exclusive",
        ),
        CheckConstraint(
            "claim_source IS NULL OR claim_source IN ('auto_on_verified_session','manual_claim')",
            name="ck_billing_pending_grants_claim_source",
        ),
        Index("idx_billing_pending_grants_email_active", "email_hash", "is_active", "claimed_at"),
        Index("idx_billing_pending_grants_claim_valid_to", "claim_valid_to"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    hash_version: Mapped[int] = mapped_column(Integer, nullable=False)
    email_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    entitlement_key: Mapped[str] = mapped_column(
        String(50), nullable=False, server_default=text("'pro_access'")
    )
    grant_duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    grant_fixed_ends_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=text("true"))
    claim_valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claim_valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed_by_user_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    claim_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_by_user_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
