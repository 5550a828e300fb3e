"""Create clients, estimates, invoices, payments and the webhook DLQ.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("client_id", sa.String(length=36), primary_key=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_clients_email", "clients", ["email"], unique=True)

    op.create_table(
        "estimates",
        sa.Column("estimate_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.client_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("job_id", sa.String(length=36), nullable=True),
        sa.Column("external_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("external_number", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_estimates_client_id", "estimates", ["client_id"])

    op.create_table(
        "invoices",
        sa.Column("invoice_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "client_id",
            sa.String(length=36),
            sa.ForeignKey("clients.client_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("job_id", sa.String(length=36), nullable=True),
        sa.Column("external_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("external_number", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="USD"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_invoices_client_id", "invoices", ["client_id"])
    op.create_index("ix_invoices_job_id", "invoices", ["job_id"])

    op.create_table(
        "payments",
        sa.Column("payment_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "invoice_id",
            sa.String(length=36),
            sa.ForeignKey("invoices.invoice_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=50), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="USD"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="applied"),
        sa.Column("raw_event", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"])
    # Idempotency key: one payment row per source transaction.
    op.create_unique_constraint("uq_payments_external_id", "payments", ["external_id"])

    op.create_table(
        "webhook_event_dlq",
        sa.Column("event_id", sa.String(length=36), primary_key=True),
        sa.Column("event_source", sa.String(length=50), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False, server_default="unknown"),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("replayed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("replay_count", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("replay_count >= 0", name="ck_webhook_event_dlq_replay_count_nonnegative"),
    )
    op.create_index("ix_webhook_event_dlq_event_source", "webhook_event_dlq", ["event_source"])
    op.create_index("ix_webhook_event_dlq_received_at", "webhook_event_dlq", ["received_at"])


def downgrade() -> None:
    op.drop_index("ix_webhook_event_dlq_received_at", table_name="webhook_event_dlq")
    op.drop_index("ix_webhook_event_dlq_event_source", table_name="webhook_event_dlq")
    op.drop_table("webhook_event_dlq")

    op.drop_constraint("uq_payments_external_id", "payments", type_="unique")
    op.drop_index("ix_payments_invoice_id", table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_invoices_job_id", table_name="invoices")
    op.drop_index("ix_invoices_client_id", table_name="invoices")
    op.drop_table("invoices")

    op.drop_index("ix_estimates_client_id", table_name="estimates")
    op.drop_table("estimates")

    op.drop_index("ix_clients_email", table_name="clients")
    op.drop_table("clients")
