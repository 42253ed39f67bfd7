# ruff: noqa: I001
"""Personal finance core tables.

Revision ID: 0001_pf_core
Revises: None
Create Date: 2025-07-07
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_pf_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _pk() -> sa.Column:
    return sa.Column(
        "id",
        sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
        primary_key=True,
        autoincrement=True,
    )


def _timestamps() -> list[sa.Column]:
    return [
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
    ]


def _owner_fk(table: str) -> sa.Column:
    return sa.Column(
        f"{table}_id",
        sa.BigInteger(),
        sa.ForeignKey(f"pf_{table}s.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "pf_users",
        _pk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # Crypto accounts arrive with 0002; the type check is widened there.
    op.create_table(
        "pf_accounts",
        _pk(),
        _owner_fk("user"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("balance", sa.Numeric(15, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.CHAR(3), nullable=False, server_default=sa.text("'EUR'")),
        sa.Column("account_number", sa.String(50), nullable=True),
        sa.Column("bank_name", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "type in ('checking','savings','credit_card','cash','investment')",
            name="ck_pf_accounts_type",
        ),
    )
    op.create_index("ix_pf_accounts_user_active", "pf_accounts", ["user_id", "is_active"])

    op.create_table(
        "pf_categories",
        _pk(),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_users.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column(
            "parent_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=True),
        sa.CheckConstraint("type in ('income','expense')", name="ck_pf_categories_type"),
    )

    op.create_table(
        "pf_recurring_transactions",
        _pk(),
        _owner_fk("user"),
        _owner_fk("account"),
        sa.Column(
            "category_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("frequency", sa.String(20), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("next_execution_date", sa.Date(), nullable=True),
        sa.Column("last_execution_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("type in ('income','expense')", name="ck_pf_rtx_type"),
        sa.CheckConstraint("amount > 0", name="ck_pf_rtx_amount_positive"),
    )
    op.create_index(
        "ix_pf_rtx_user_active_next",
        "pf_recurring_transactions",
        ["user_id", "is_active", "next_execution_date"],
    )

    op.create_table(
        "pf_transactions",
        _pk(),
        _owner_fk("user"),
        _owner_fk("account"),
        sa.Column(
            "category_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column(
            "recurring_transaction_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_recurring_transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reference_number", sa.String(100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("type in ('income','expense','transfer')", name="ck_pf_tx_type"),
        sa.CheckConstraint("amount > 0", name="ck_pf_tx_amount_positive"),
    )
    op.create_index("ix_pf_tx_user_date", "pf_transactions", ["user_id", "transaction_date"])
    op.create_index("ix_pf_tx_account_date", "pf_transactions", ["account_id", "transaction_date"])
    op.create_index(
        "ix_pf_tx_category_date", "pf_transactions", ["category_id", "transaction_date"]
    )

    op.create_table(
        "pf_budgets",
        _pk(),
        _owner_fk("user"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "category_id",
            sa.BigInteger(),
            sa.ForeignKey("pf_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("spent_amount", sa.Numeric(15, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("period", sa.String(10), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint(
            "period in ('weekly','monthly','quarterly','yearly')",
            name="ck_pf_budgets_period",
        ),
    )
    op.create_index("ix_pf_budgets_user_active", "pf_budgets", ["user_id", "is_active"])
    op.create_index("ix_pf_budgets_category_active", "pf_budgets", ["category_id", "is_active"])

    op.create_table(
        "pf_goals",
        _pk(),
        _owner_fk("user"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("target_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column(
            "current_amount", sa.Numeric(15, 2), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("is_achieved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("achieved_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("pf_goals")
    op.drop_index("ix_pf_budgets_category_active", table_name="pf_budgets")
    op.drop_index("ix_pf_budgets_user_active", table_name="pf_budgets")
    op.drop_table("pf_budgets")
    op.drop_index("ix_pf_tx_category_date", table_name="pf_transactions")
    op.drop_index("ix_pf_tx_account_date", table_name="pf_transactions")
    op.drop_index("ix_pf_tx_user_date", table_name="pf_transactions")
    op.drop_table("pf_transactions")
    op.drop_index("ix_pf_rtx_user_active_next", table_name="pf_recurring_transactions")
    op.drop_table("pf_recurring_transactions")
    op.drop_table("pf_categories")
    op.drop_index("ix_pf_accounts_user_active", table_name="pf_accounts")
    op.drop_table("pf_accounts")
    op.drop_table("pf_users")
