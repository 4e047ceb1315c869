"""invoice and invoice lock tables"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261017_01"
down_revision = None
branch_labels = None
depends_on = None

payment_status = sa.Enum("unpaid", "paid", "overdue", name="payment_status")


def upgrade() -> None:
    op.create_table(
        "invoice",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("invoice_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("payment_status", payment_status, nullable=False, server_default="unpaid"),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("modified_by_id", sa.Integer(), nullable=True),
        sa.CheckConstraint("amount_cents >= 0", name="ck_invoice_amount_cents"),
        sa.CheckConstraint("due_date >= issue_date", name="ck_invoice_dates"),
    )

    op.create_table(
        "invoice_lock",
        sa.Column("invoice_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("locked_by_user_id", sa.Integer(), nullable=False),
        sa.Column("locked_by_user_name", sa.String(length=50), nullable=False),
        sa.Column("lock_acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("lock_expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_invoice_lock_lock_expires_at", "invoice_lock", ["lock_expires_at"])


def downgrade() -> None:
    op.drop_index("ix_invoice_lock_lock_expires_at", table_name="invoice_lock")
    op.drop_table("invoice_lock")
    op.drop_table("invoice")
    payment_status.drop(op.get_bind(), checkfirst=True)
