"""Ticket batches, tickets and the scan log."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20241015_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "ticket_batches",
        sa.Column("id", sa.Text(), primary_key=True, nullable=False),
        sa.Column("event_title", sa.Text(), nullable=False),
        sa.Column("venue", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.Text(), primary_key=True, nullable=False),
        sa.Column("batch_id", sa.Text(), sa.ForeignKey("ticket_batches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ticket_number", sa.Text(), nullable=False, unique=True),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone_number", sa.Text(), nullable=True),
        sa.Column("event_date", sa.Text(), nullable=True),
        sa.Column("ticket_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("is_valid", sa.Boolean(), nullable=False, server_default=sa.text("TRUE")),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column("used_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("is_used = (used_at IS NOT NULL)", name="tickets_used_at_matches_is_used"),
    )

    op.create_table(
        "ticket_scans",
        sa.Column("id", sa.Text(), primary_key=True, nullable=False),
        sa.Column("ticket_id", sa.Text(), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("batch_id", sa.Text(), nullable=True),
        sa.Column("scan_result", sa.Text(), nullable=False),
        sa.Column("scanned_by", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("scanned_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_index("tickets_batch_id_idx", "tickets", ["batch_id"])
    op.create_index("ticket_scans_ticket_id_idx", "ticket_scans", ["ticket_id", sa.text("scanned_at DESC")])
    op.create_index("ticket_scans_batch_id_idx", "ticket_scans", ["batch_id", sa.text("scanned_at DESC")])


def downgrade() -> None:
    op.drop_index("ticket_scans_batch_id_idx", table_name="ticket_scans")
    op.drop_index("ticket_scans_ticket_id_idx", table_name="ticket_scans")
    op.drop_index("tickets_batch_id_idx", table_name="tickets")
    op.drop_table("ticket_scans")
    op.drop_table("tickets")
    op.drop_table("ticket_batches")
