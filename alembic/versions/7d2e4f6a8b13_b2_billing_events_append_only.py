"""b2_billing_events_append_only

Revision ID: 7d2e4f6a8b13
Revises: 3a7c1e9b2d40
Create Date: 2026-10-12 09:30:00.000000
"""

from collections.abc import Sequence

from alembic import op

revision: str = "7d2e4f6a8b13"
down_revision: str | None = "3a7c1e9b2d40"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_billing_events_append_only()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION 'billing_events is append-only';
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_billing_events_append_only
        BEFORE UPDATE OR DELETE ON billing_events
        FOR EACH ROW
        EXECUTE FUNCTION fn_billing_events_append_only();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_billing_events_append_only ON billing_events;")
    op.execute("DROP FUNCTION IF EXISTS fn_billing_events_append_only();")
