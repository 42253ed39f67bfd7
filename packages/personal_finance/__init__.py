"""Public interface for the ``personal_finance`` package.

This module exposes the package's service functions and public models/types
as the stable import surface. There is no runtime logic here, only symbol
re-exports.
"""

from .budgets import (
    account_projected_balance,
    budget_projected_spent,
    recalculate_budgets,
)
from .due_processing import process_due_planned, process_due_recurring
from .errors import (
    ConversionConflictError,
    DataError,
    NotFoundError,
    PersonalFinanceError,
    UpstreamUnavailableError,
    ValidationError,
)
from .financial_calendar import CalendarAggregator, CalendarSources, SqlCalendarSources
from .ledger import create_transaction, delete_transaction, update_transaction
from .models import (
    CalendarDay,
    Impact,
    ItemOutcome,
    MonthCalendar,
    MonthSummary,
    ProcessResult,
    Quote,
)
from .planned import cancel_planned, confirm_planned, convert_planned, create_planned
from .recurrence import advance, expand_occurrences

__all__ = [
    # Calendar
    "CalendarAggregator",
    "CalendarSources",
    "SqlCalendarSources",
    "advance",
    "expand_occurrences",
    # Ledger / planned
    "create_transaction",
    "update_transaction",
    "delete_transaction",
    "create_planned",
    "confirm_planned",
    "cancel_planned",
    "convert_planned",
    # Batch jobs
    "process_due_planned",
    "process_due_recurring",
    # Budgets
    "budget_projected_spent",
    "recalculate_budgets",
    "account_projected_balance",
    # Models / types
    "CalendarDay",
    "Impact",
    "MonthCalendar",
    "MonthSummary",
    "Quote",
    "ItemOutcome",
    "ProcessResult",
    # Errors
    "PersonalFinanceError",
    "NotFoundError",
    "ValidationError",
    "DataError",
    "UpstreamUnavailableError",
    "ConversionConflictError",
]
