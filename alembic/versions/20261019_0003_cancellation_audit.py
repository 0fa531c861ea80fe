"""cancellation audit log

Revision ID: 20261019_0003
Revises: 20261019_0002
Create Date: 2026-10-19 16:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0003"
down_revision: Union[str, Sequence[str], None] = "20261019_0002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "cancellation_audit",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cancellation_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("performed_by", sa.Integer(), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["cancellation_id"], ["cancellations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["performed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_cancellation_audit_id"), "cancellation_audit", ["id"], unique=False)
    op.create_index(
        op.f("ix_cancellation_audit_cancellation_id"),
        "cancellation_audit",
        ["cancellation_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_cancellation_audit_cancellation_id"), table_name="cancellation_audit")
    op.drop_index(op.f("ix_cancellation_audit_id"), table_name="cancellation_audit")
    op.drop_table("cancellation_audit")
