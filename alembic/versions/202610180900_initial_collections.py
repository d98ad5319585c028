"""initial collections

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade():
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("subcategory", sa.String(length=100), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("from", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("to", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("tag", sa.String(length=50), nullable=True),
        sa.Column("track", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_category", "transactions", ["category"])
    op.create_index("ix_transactions_subcategory", "transactions", ["subcategory"])
    op.create_index("ix_transactions_tag", "transactions", ["tag"])
    op.create_index("ix_transactions_track", "transactions", ["track"])

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("subcategories", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_category_name"),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_tag_name"),
    )

    op.create_table(
        "settings",
        sa.Column("id", sa.String(length=20), primary_key=True),
        sa.Column("user_settings", sa.JSON(), nullable=False),
        sa.Column("global_filter", sa.JSON(), nullable=False),
        sa.Column("last_sync", sa.String(length=40), nullable=True),
        *_timestamps(),
    )


def downgrade():
    op.drop_table("settings")
    op.drop_table("tags")
    op.drop_table("categories")
    op.drop_index("ix_transactions_track", table_name="transactions")
    op.drop_index("ix_transactions_tag", table_name="transactions")
    op.drop_index("ix_transactions_subcategory", table_name="transactions")
    op.drop_index("ix_transactions_category", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")
