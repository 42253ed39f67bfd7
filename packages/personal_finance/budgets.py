"""Budget, goal and account figures computed on demand.

Percentages and remaining amounts are plain functions of the row passed in;
nothing here caches derived values on the ORM objects. The only stored
derived figure is ``PfBudget.spent_amount``, refreshed by
:func:`recalculate_budget_spent` whenever an expense in the budget's
category changes (see ``ledger``) and by the ``recalculate-budgets`` command.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from db.models.finance import PfAccount, PfBudget, PfGoal
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import ZERO, signed_impact
from .stores import find_budgets, sum_confirmed_planned, sum_expenses, to_money

_logger = get_logger("personal_finance.budgets")

_HUNDRED = Decimal("100")
PROJECTION_WINDOW_DAYS = 30


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return (part / whole * _HUNDRED).quantize(Decimal("0.01"))


# ---------------------------
# Budgets
# ---------------------------


def budget_remaining(budget: PfBudget) -> Decimal:
    return to_money(budget.amount) - to_money(budget.spent_amount)


def budget_percentage_used(budget: PfBudget) -> Decimal:
    return _percent(to_money(budget.spent_amount), to_money(budget.amount))


def budget_is_exceeded(budget: PfBudget) -> bool:
    return to_money(budget.spent_amount) > to_money(budget.amount)


def budget_projected_spent(session: Session, budget: PfBudget) -> Decimal:
    """Spent so far plus confirmed planned expenses inside the budget window."""

    window_end = budget.end_date or date.max
    planned = sum_confirmed_planned(
        session,
        user_id=budget.user_id,
        start=budget.start_date,
        end=window_end,
        category_id=budget.category_id,
        type_="expense",
    )
    return to_money(budget.spent_amount) + sum((amt for _t, amt in planned), ZERO)


def budget_projected_percentage_used(session: Session, budget: PfBudget) -> Decimal:
    return _percent(budget_projected_spent(session, budget), to_money(budget.amount))


def budget_projected_remaining(session: Session, budget: PfBudget) -> Decimal:
    return to_money(budget.amount) - budget_projected_spent(session, budget)


def is_projected_over_budget(session: Session, budget: PfBudget) -> bool:
    return budget_projected_spent(session, budget) > to_money(budget.amount)


def recalculate_budget_spent(session: Session, budget: PfBudget) -> Decimal:
    """Recompute ``spent_amount`` from the ledger and store it on ``budget``."""

    spent = sum_expenses(
        session,
        user_id=budget.user_id,
        category_id=budget.category_id,
        start=budget.start_date,
        end=budget.end_date,
    )
    budget.spent_amount = spent
    return spent


def recalculate_budgets_for_category(session: Session, *, user_id: int, category_id: int) -> int:
    """Refresh every active budget of ``user_id`` tracking ``category_id``."""

    budgets = find_budgets(session, user_id=user_id, category_id=category_id)
    for budget in budgets:
        recalculate_budget_spent(session, budget)
    return len(budgets)


def recalculate_budgets(session: Session, *, user_id: int | None = None) -> int:
    """Refresh ``spent_amount`` for all budgets (optionally one user's).

    Inactive budgets are included so their history stays accurate.
    """

    budgets = find_budgets(session, user_id=user_id, active_only=False)
    for budget in budgets:
        recalculate_budget_spent(session, budget)
    session.flush()
    _logger.info(
        "Recalculated %d budget(s)%s",
        len(budgets),
        "" if user_id is None else f" for user {user_id}",
    )
    return len(budgets)


# ---------------------------
# Goals
# ---------------------------


def goal_remaining(goal: PfGoal) -> Decimal:
    return to_money(goal.target_amount) - to_money(goal.current_amount)


def goal_percentage_completed(goal: PfGoal) -> Decimal:
    return _percent(to_money(goal.current_amount), to_money(goal.target_amount))


# ---------------------------
# Accounts
# ---------------------------


def account_projected_balance(
    session: Session,
    account: PfAccount,
    *,
    today: date,
    window_days: int = PROJECTION_WINDOW_DAYS,
) -> Decimal:
    """Balance plus confirmed planned impacts due within ``window_days``.

    Overdue confirmed items (dated before ``today``) are included: they have
    not hit the ledger yet either.
    """

    planned = sum_confirmed_planned(
        session,
        user_id=account.user_id,
        end=today + timedelta(days=window_days),
        account_id=account.id,
    )
    delta = sum((signed_impact(t, amt) for t, amt in planned), ZERO)
    return to_money(account.balance) + delta


__all__ = [
    "budget_remaining",
    "budget_percentage_used",
    "budget_is_exceeded",
    "budget_projected_spent",
    "budget_projected_percentage_used",
    "budget_projected_remaining",
    "is_projected_over_budget",
    "recalculate_budget_spent",
    "recalculate_budgets_for_category",
    "recalculate_budgets",
    "goal_remaining",
    "goal_percentage_completed",
    "account_projected_balance",
]
