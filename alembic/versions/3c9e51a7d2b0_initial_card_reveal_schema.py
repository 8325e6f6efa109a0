"""initial_card_reveal_schema

Revision ID: 3c9e51a7d2b0
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "3c9e51a7d2b0"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("slug", sa.String(96), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("num_cards", sa.Integer(), nullable=False),
        sa.Column("min_value", sa.Integer(), nullable=False),
        sa.Column("max_value", sa.Integer(), nullable=False),
        sa.Column("goal_amount", sa.Integer(), nullable=True),
        sa.Column("payout_account_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("num_cards > 0", name="ck_events_num_cards_positive"),
        sa.CheckConstraint("min_value > 0", name="ck_events_min_value_positive"),
        sa.CheckConstraint("max_value >= min_value", name="ck_events_value_range"),
        sa.UniqueConstraint("slug", name="uq_events_slug"),
    )

    op.create_table(
        "cards",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("event_id", sa.BigInteger(), nullable=False),
        sa.Column("card_number", sa.Integer(), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'AVAILABLE'")),
        sa.Column("unlock_code", sa.String(12), nullable=True),
        sa.Column("guest_email", sa.String(320), nullable=True),
        sa.Column("guest_name", sa.String(255), nullable=True),
        sa.Column("reserved_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revealed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('AVAILABLE','RESERVED','REVEALED')", name="ck_cards_status"),
        sa.CheckConstraint("card_number > 0", name="ck_cards_card_number_positive"),
        sa.CheckConstraint("value > 0", name="ck_cards_value_positive"),
        sa.CheckConstraint(
            "(status = 'AVAILABLE' AND guest_email IS NULL AND reserved_until IS NULL) "
            "OR status <> 'AVAILABLE'",
            name="ck_cards_available_has_no_guest",
        ),
        sa.CheckConstraint(
            "(status = 'RESERVED' AND unlock_code IS NOT NULL AND guest_email IS NOT NULL "
            "AND reserved_until IS NOT NULL) OR (status <> 'RESERVED' AND unlock_code IS NULL)",
            name="ck_cards_reservation_fields",
        ),
        sa.CheckConstraint(
            "(status = 'REVEALED' AND revealed_at IS NOT NULL AND guest_email IS NOT NULL) "
            "OR (status <> 'REVEALED' AND revealed_at IS NULL)",
            name="ck_cards_reveal_fields",
        ),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("event_id", "card_number", name="uq_cards_event_card_number"),
    )
    op.create_index("idx_cards_event_status", "cards", ["event_id", "status"])

    op.create_table(
        "unlock_attempts",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("event_id", sa.BigInteger(), nullable=False),
        sa.Column("card_number", sa.Integer(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("window_started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("attempts >= 0", name="ck_unlock_attempts_attempts_non_negative"),
        sa.UniqueConstraint("email", "event_id", "card_number", name="uq_unlock_attempts_key"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("card_id", sa.BigInteger(), nullable=False),
        sa.Column("event_id", sa.BigInteger(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("transaction_fee", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("guest_email", sa.String(320), nullable=False),
        sa.Column("guest_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("stripe_session_id", sa.String(255), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('PENDING','PAID')", name="ck_payments_status"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.CheckConstraint("transaction_fee >= 0", name="ck_payments_fee_non_negative"),
        sa.CheckConstraint(
            "(status = 'PAID' AND paid_at IS NOT NULL) OR (status = 'PENDING' AND paid_at IS NULL)",
            name="ck_payments_paid_at",
        ),
        sa.ForeignKeyConstraint(["card_id"], ["cards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("stripe_session_id", name="uq_payments_stripe_session_id"),
    )
    op.create_index("idx_payments_status_created", "payments", ["status", "created_at"])
    op.create_index("idx_payments_card", "payments", ["card_id"])
    op.create_index(
        "uq_payments_single_paid_per_card",
        "payments",
        ["card_id"],
        unique=True,
        postgresql_where=sa.text("status = 'PAID'"),
    )

    op.create_table(
        "reconciliation_runs",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("trigger", sa.String(16), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("payments_examined", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payments_updated", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cards_updated", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("status IN ('OK','PARTIAL')", name="ck_reconciliation_runs_status"),
    )
    op.create_index("idx_reconciliation_runs_started", "reconciliation_runs", ["started_at"])


def downgrade() -> None:
    op.drop_index("idx_reconciliation_runs_started", table_name="reconciliation_runs")
    op.drop_table("reconciliation_runs")
    op.drop_index("uq_payments_single_paid_per_card", table_name="payments")
    op.drop_index("idx_payments_card", table_name="payments")
    op.drop_index("idx_payments_status_created", table_name="payments")
    op.drop_table("payments")
    op.drop_table("unlock_attempts")
    op.drop_index("idx_cards_event_status", table_name="cards")
    op.drop_table("cards")
    op.drop_table("events")
