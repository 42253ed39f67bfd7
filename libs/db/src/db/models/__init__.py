"""Shared SQLAlchemy models registry for the workspace database.

Holds the personal finance domain used by ``personal_finance``: owners,
accounts, categories, ledger transactions, recurring/planned templates,
budgets, goals and investment holdings.
"""

from .finance import (
    Base,
    PfAccount,
    PfBudget,
    PfCategory,
    PfGoal,
    PfHolding,
    PfPlannedTransaction,
    PfRecurringTransaction,
    PfTransaction,
    PfUser,
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
