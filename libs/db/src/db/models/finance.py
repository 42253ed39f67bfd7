from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# BIGINT ids on Postgres; SQLite only autoincrements INTEGER PRIMARY KEY.
_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Owners: pf_users
# ---------------------------


class PfUser(Base):
    __tablename__ = "pf_users"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Reference: pf_accounts / pf_categories
# ---------------------------


class PfAccount(Base):
    __tablename__ = "pf_accounts"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("pf_users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Running balance; kept in step with pf_transactions by the ledger service.
    balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, server_default=text("0")
    )
    currency: Mapped[str] = mapped_column(CHAR(3), nullable=False, server_default=text("'EUR'"))
    account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=sa_expr.true())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "type in ('checking','savings','credit_card','cash','investment','crypto')",
            name="ck_pf_accounts_type",
        ),
        Index("ix_pf_accounts_user_active", "user_id", "is_active"),
    )


class PfCategory(Base):
    __tablename__ = "pf_categories"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    # NULL user_id marks a shared default category.
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("pf_users.id", ondelete="CASCADE"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("pf_categories.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=sa_expr.true())
    sort_order: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("type in ('income','expense')", name="ck_pf_categories_type"),
    )


# ---------------------------
# Core: pf_transactions
# ---------------------------


class PfTransaction(Base):
    __tablename__ = "pf_transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("pf_users.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("pf_accounts.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("pf_categories.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Set when the row was materialized from a recurring template.
    recurring_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("pf_recurring_transactions.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("type in ('income','expense','transfer')", name="ck_pf_tx_type"),
        CheckConstraint("amount > 0", name="ck_pf_tx_amount_positive"),
        Index("ix_pf_tx_user_date", "user_id", "transaction_date"),
        Index("ix_pf_tx_account_date", "account_id", "transaction_date"),
        Index("ix_pf_tx_category_date", "category_id", "transaction_date"),
    )


# ---------------------------
# Templates: pf_recurring_transactions / pf_planned_transactions
# ---------------------------


class PfRecurringTransaction(Base):
    __tablename__ = "pf_recurring_transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("pf_users.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("pf_accounts.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("pf_categories.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    # Free-form on purpose: an unknown value is a data error handled by the
    # expansion code, not a constraint violation on read.
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # NULL once the template has run past ``end_date``.
    next_execution_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_execution_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=sa_expr.true())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("type in ('income','expense')", name="ck_pf_rtx_type"),
        CheckConstraint("amount > 0", name="ck_pf_rtx_amount_positive"),
        Index("ix_pf_rtx_user_active_next", "user_id", "is_active", "next_execution_date"),
    )


class PfPlannedTransaction(Base):
    __tablename__ = "pf_planned_transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("pf_users.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("pf_accounts.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("pf_categories.id", ondelete="CASCADE"), nullable=False
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    planned_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, server_default=text("'pending'")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    auto_convert: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.true()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("type in ('income','expense')", name="ck_pf_ptx_type"),
        CheckConstraint(
            "status in ('pending','confirmed','converted','cancelled')",
            name="ck_pf_ptx_status",
        ),
        CheckConstraint("amount > 0", name="ck_pf_ptx_amount_positive"),
        Index("ix_pf_ptx_user_date", "user_id", "planned_date"),
        Index("ix_pf_ptx_status_date", "status", "planned_date"),
    )


# ---------------------------
# Planning: pf_budgets / pf_goals
# ---------------------------


class PfBudget(Base):
    __tablename__ = "pf_budgets"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("pf_users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("pf_categories.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    # Cached sum of expenses in the window; refreshed by the ledger service.
    spent_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, server_default=text("0")
    )
    period: Mapped[str] = mapped_column(String(10), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=sa_expr.true())

    __table_args__ = (
        CheckConstraint(
            "period in ('weekly','monthly','quarterly','yearly')",
            name="ck_pf_budgets_period",
        ),
        Index("ix_pf_budgets_user_active", "user_id", "is_active"),
        Index("ix_pf_budgets_category_active", "category_id", "is_active"),
    )


class PfGoal(Base):
    __tablename__ = "pf_goals"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("pf_users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    current_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, server_default=text("0")
    )
    target_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_achieved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    achieved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------
# Investments: pf_holdings
# ---------------------------


class PfHolding(Base):
    __tablename__ = "pf_holdings"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("pf_accounts.id", ondelete="CASCADE"), nullable=False
    )
    asset_type: Mapped[str] = mapped_column(String(10), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    average_cost: Mapped[Decimal | None] = mapped_column(Numeric(15, 8), nullable=True)
    current_price: Mapped[Decimal | None] = mapped_column(Numeric(15, 8), nullable=True)
    market_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    total_invested: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, server_default=text("0")
    )
    unrealized_pnl: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, server_default=text("0")
    )
    last_price_update: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("account_id", "symbol", name="uq_pf_holdings_account_symbol"),
        CheckConstraint(
            "asset_type in ('crypto','stock','etf','bond','commodity')",
            name="ck_pf_holdings_asset_type",
        ),
        Index("ix_pf_holdings_asset_symbol", "asset_type", "symbol"),
    )


__all__ = [
    "Base",
    "PfUser",
    "PfAccount",
    "PfCategory",
    "PfTransaction",
    "PfRecurringTransaction",
    "PfPlannedTransaction",
    "PfBudget",
    "PfGoal",
    "PfHolding",
]
