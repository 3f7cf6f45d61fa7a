"""Create stores and the daily, monthly and yearly sales aggregate tables."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_sales_tables"
down_revision = None
branch_labels = None
depends_on = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def _store_columns() -> list[sa.Column]:
    return [
        sa.Column("id", ID_TYPE, primary_key=True, autoincrement=True),
        sa.Column(
            "store_id",
            ID_TYPE,
            sa.ForeignKey("stores.id"),
            nullable=False,
        ),
        sa.Column("store_code", sa.String(10), nullable=False),
        sa.Column("store_name", sa.String(255), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("id", ID_TYPE, primary_key=True, autoincrement=True),
        sa.Column("store_code", sa.String(10), nullable=False, unique=True),
        sa.Column("store_name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "daily_sales",
        *_store_columns(),
        sa.Column("sale_date", sa.Date(), nullable=False),
        sa.Column("danfe", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("pdv", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("exchange", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(15, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("store_id", "sale_date", name="uq_daily_sales_store_date"),
    )
    op.create_index("ix_daily_sales_sale_date", "daily_sales", ["sale_date"])

    op.create_table(
        "monthly_sales",
        *_store_columns(),
        sa.Column("year_month", sa.String(7), nullable=False),
        sa.Column("total", sa.Numeric(15, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("store_id", "year_month", name="uq_monthly_sales_store_month"),
    )
    op.create_index("ix_monthly_sales_year_month", "monthly_sales", ["year_month"])

    op.create_table(
        "yearly_sales",
        *_store_columns(),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("total", sa.Numeric(15, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("store_id", "year", name="uq_yearly_sales_store_year"),
    )


def downgrade() -> None:
    op.drop_table("yearly_sales")
    op.drop_index("ix_monthly_sales_year_month", table_name="monthly_sales")
    op.drop_table("monthly_sales")
    op.drop_index("ix_daily_sales_sale_date", table_name="daily_sales")
    op.drop_table("daily_sales")
    op.drop_table("stores")
