"""sales, cash sessions and cancellations

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0002"
down_revision: Union[str, Sequence[str], None] = "20261019_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("client_sale_id", sa.String(length=64), nullable=True),
        sa.Column("total", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("payment_method", sa.String(length=16), nullable=False, server_default="cash"),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="completed"),
        sa.Column("cancelled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_id", "client_sale_id", name="uq_sales_business_client_sale"),
    )
    op.create_index(op.f("ix_sales_id"), "sales", ["id"], unique=False)
    op.create_index(op.f("ix_sales_business_id"), "sales", ["business_id"], unique=False)
    op.create_index(op.f("ix_sales_user_id"), "sales", ["user_id"], unique=False)
    op.create_index(op.f("ix_sales_created_at"), "sales", ["created_at"], unique=False)

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("subtotal", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sale_items_id"), "sale_items", ["id"], unique=False)
    op.create_index(op.f("ix_sale_items_sale_id"), "sale_items", ["sale_id"], unique=False)
    op.create_index(op.f("ix_sale_items_product_id"), "sale_items", ["product_id"], unique=False)

    op.create_table(
        "cash_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("opening_amount", sa.Numeric(precision=14, scale=2), nullable=False, server_default="0"),
        sa.Column("closing_amount", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("expected_amount", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("difference", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column("opened_at", sa.DateTime(), nullable=False),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_cash_sessions_id"), "cash_sessions", ["id"], unique=False)
    op.create_index(op.f("ix_cash_sessions_business_id"), "cash_sessions", ["business_id"], unique=False)
    op.create_index(op.f("ix_cash_sessions_user_id"), "cash_sessions", ["user_id"], unique=False)

    op.create_table(
        "cancellations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("reason_code", sa.String(length=2), nullable=False),
        sa.Column("reason_text", sa.String(length=255), nullable=False),
        sa.Column("observations", sa.Text(), nullable=True),
        sa.Column("requires_refund", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("refund_method", sa.String(length=16), nullable=True),
        sa.Column("refund_amount", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("refund_status", sa.String(length=16), nullable=True),
        sa.Column("refund_processed_at", sa.DateTime(), nullable=True),
        sa.Column("refund_processed_by", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["cancelled_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["refund_processed_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_cancellations_id"), "cancellations", ["id"], unique=False)
    op.create_index(op.f("ix_cancellations_business_id"), "cancellations", ["business_id"], unique=False)
    op.create_index(op.f("ix_cancellations_sale_id"), "cancellations", ["sale_id"], unique=True)
    op.create_index(op.f("ix_cancellations_cancelled_by"), "cancellations", ["cancelled_by"], unique=False)
    op.create_index(op.f("ix_cancellations_cancelled_at"), "cancellations", ["cancelled_at"], unique=False)

    op.create_table(
        "refunds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cancellation_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("method", sa.String(length=16), nullable=False),
        sa.Column("reference", sa.String(length=120), nullable=True),
        sa.Column("bank_account", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("processed_by", sa.Integer(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["cancellation_id"], ["cancellations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["processed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_refunds_id"), "refunds", ["id"], unique=False)
    op.create_index(op.f("ix_refunds_cancellation_id"), "refunds", ["cancellation_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_refunds_cancellation_id"), table_name="refunds")
    op.drop_index(op.f("ix_refunds_id"), table_name="refunds")
    op.drop_table("refunds")

    op.drop_index(op.f("ix_cancellations_cancelled_at"), table_name="cancellations")
    op.drop_index(op.f("ix_cancellations_cancelled_by"), table_name="cancellations")
    op.drop_index(op.f("ix_cancellations_sale_id"), table_name="cancellations")
    op.drop_index(op.f("ix_cancellations_business_id"), table_name="cancellations")
    op.drop_index(op.f("ix_cancellations_id"), table_name="cancellations")
    op.drop_table("cancellations")

    op.drop_index(op.f("ix_cash_sessions_user_id"), table_name="cash_sessions")
    op.drop_index(op.f("ix_cash_sessions_business_id"), table_name="cash_sessions")
    op.drop_index(op.f("ix_cash_sessions_id"), table_name="cash_sessions")
    op.drop_table("cash_sessions")

    op.drop_index(op.f("ix_sale_items_product_id"), table_name="sale_items")
    op.drop_index(op.f("ix_sale_items_sale_id"), table_name="sale_items")
    op.drop_index(op.f("ix_sale_items_id"), table_name="sale_items")
    op.drop_table("sale_items")

    op.drop_index(op.f("ix_sales_created_at"), table_name="sales")
    op.drop_index(op.f("ix_sales_user_id"), table_name="sales")
    op.drop_index(op.f("ix_sales_business_id"), table_name="sales")
    op.drop_index(op.f("ix_sales_id"), table_name="sales")
    op.drop_table("sales")
