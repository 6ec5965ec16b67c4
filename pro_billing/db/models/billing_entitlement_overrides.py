from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from pro_billing.db.models.base import Base


class BillingEntitlementOverride(Base):
    __tablename__ = "billing_entitlement_overrides"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ck_billing_entitlement_overrides_window"),
        CheckConstraint(
            "source_type IN ('admin','promotion','pending_grant','migration','system')",
            name="ck_billing_entitlement_overrides_source_type",
        ),
        Index("idx_billing_overrides_user_entitlement", "user_id", "entitlement_key"),
        Index(
            "idx_billing_overrides_user_entitlement_range",
            "user_id",
            "entitlement_key",
            "starts_at",
            "ends_at",
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    entitlement_key: Mapped[str] = mapped_column(
        String(50), nullable=False, server_default=text("'pro_access'")
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    granted_by_user_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
