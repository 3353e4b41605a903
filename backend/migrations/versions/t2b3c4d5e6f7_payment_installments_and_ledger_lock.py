"""Payment installments and supplier ledger lock column

Revision ID: t2b3c4d5e6f7
Revises: t1a2b3c4d5e6
Create Date: 2026-10-20 09:30:00.000000

- suppliers.ledger_version: bumped by every ledger write so appends for one
  supplier take a write lock before reading the previous balance
- supplier_payment_installments: partial payments of a payment receipt
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "t2b3c4d5e6f7"
down_revision = "t1a2b3c4d5e6"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.add_column(sa.Column("ledger_version", sa.Integer(), nullable=False, server_default="0"))

    op.create_table("supplier_payment_installments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payment_receipt_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(length=16), nullable=True),
        sa.Column("reference_number", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["payment_receipt_id"], ["supplier_payment_receipts.id"], ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table("supplier_payment_installments", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_supplier_payment_installments_payment_receipt_id"), ["payment_receipt_id"], unique=False
        )


def downgrade():
    with op.batch_alter_table("supplier_payment_installments", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_supplier_payment_installments_payment_receipt_id"))
    op.drop_table("supplier_payment_installments")

    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.drop_column("ledger_version")
