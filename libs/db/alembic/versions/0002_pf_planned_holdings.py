# ruff: noqa: I001
"""Planned transactions, investment holdings and crypto accounts.

Revision ID: 0002_pf_planned_holdings
Revises: 0001_pf_core
Create Date: 2025-09-16
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_pf_planned_holdings"
down_revision: str | None = "0001_pf_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


_ACCOUNT_TYPES_V1 = "('checking','savings','credit_card','cash','investment')"
_ACCOUNT_TYPES_V2 = "('checking','savings','credit_card','cash','investment','crypto')"


def upgrade() -> None:
    with op.batch_alter_table("pf_accounts") as batch:
        batch.drop_constraint("ck_pf_accounts_type", type_="check")
        batch.create_check_constraint("ck_pf_accounts_type", f"type in {_ACCOUNT_TYPES_V2}")

    op.create_table(
        "pf_planned_transactions",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "account_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("planned_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("auto_convert", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("type in ('income','expense')", name="ck_pf_ptx_type"),
        sa.CheckConstraint(
            "status in ('pending','confirmed','converted','cancelled')",
            name="ck_pf_ptx_status",
        ),
        sa.CheckConstraint("amount > 0", name="ck_pf_ptx_amount_positive"),
    )
    op.create_index("ix_pf_ptx_user_date", "pf_planned_transactions", ["user_id", "planned_date"])
    op.create_index(
        "ix_pf_ptx_status_date", "pf_planned_transactions", ["status", "planned_date"]
    )

    op.create_table(
        "pf_holdings",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column(
            "account_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("asset_type", sa.String(10), nullable=False),
        sa.Column("symbol", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("quantity", sa.Numeric(20, 8), nullable=False),
        sa.Column("average_cost", sa.Numeric(15, 8), nullable=True),
        sa.Column("current_price", sa.Numeric(15, 8), nullable=True),
        sa.Column("market_value", sa.Numeric(15, 2), nullable=True),
        sa.Column("total_invested", sa.Numeric(15, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("unrealized_pnl", sa.Numeric(15, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("last_price_update", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("account_id", "symbol", name="uq_pf_holdings_account_symbol"),
        sa.CheckConstraint(
            "asset_type in ('crypto','stock','etf','bond','commodity')",
            name="ck_pf_holdings_asset_type",
        ),
    )
    op.create_index("ix_pf_holdings_asset_symbol", "pf_holdings", ["asset_type", "symbol"])


def downgrade() -> None:
    op.drop_index("ix_pf_holdings_asset_symbol", table_name="pf_holdings")
    op.drop_table("pf_holdings")
    op.drop_index("ix_pf_ptx_status_date", table_name="pf_planned_transactions")
    op.drop_index("ix_pf_ptx_user_date", table_name="pf_planned_transactions")
    op.drop_table("pf_planned_transactions")
    with op.batch_alter_table("pf_accounts") as batch:
        batch.drop_constraint("ck_pf_accounts_type", type_="check")
        batch.create_check_constraint("ck_pf_accounts_type", f"type in {_ACCOUNT_TYPES_V1}")
