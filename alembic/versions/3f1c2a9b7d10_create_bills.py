"""create bills, recurrence_series and bill_links

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "3f1c2a9b7d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "recurrence_series",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("scope", sa.String(255), nullable=False),
        sa.Column("start_date", sa.String(10), nullable=False),
        sa.Column("end_date", sa.String(10), nullable=False),
        sa.Column("interval_months", sa.Integer, nullable=False),
        sa.Column("count", sa.Integer, nullable=False),
        sa.Column("frequency", sa.String(10), nullable=False),
        sa.Column("anchor_day", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "bills",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("scope", sa.String(255), nullable=False, index=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("due_date", sa.String(10), nullable=True),
        sa.Column("category", sa.String(20), nullable=True),
        sa.Column("category_ref_id", sa.String(64), nullable=True),
        sa.Column("category_ref_label", sa.Text, nullable=True),
        sa.Column("counterparty_id", sa.String(64), nullable=True),
        sa.Column("counterparty_label", sa.Text, nullable=True),
        sa.Column("is_protocoled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("protocoled_at", sa.DateTime, nullable=True),
        sa.Column("invoice_number", sa.Text, nullable=True),
        sa.Column("boleto_number", sa.Text, nullable=True),
        sa.Column("series_id", sa.String(64), sa.ForeignKey("recurrence_series.id"), nullable=True),
        sa.Column("competency", sa.String(7), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "bill_links",
        sa.Column("parent_id", sa.String(64), primary_key=True),
        sa.Column("kind", sa.String(40), primary_key=True),
        sa.Column("child_id", sa.String(64), primary_key=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("bill_links")
    op.drop_table("bills")
    op.drop_table("recurrence_series")
