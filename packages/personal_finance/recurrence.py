"""Calendar arithmetic for recurring transactions.

Month-end rule
--------------
Calendar-month steps use :class:`dateutil.relativedelta.relativedelta`, which
keeps the day-of-month and clamps it to the length of the target month:

- Jan 31 + 1 month -> Feb 28 (Feb 29 in leap years)
- Feb 28 + 1 month -> Mar 28
- Feb 29 + 1 year  -> Feb 28
- Nov 30 + 3 months -> Feb 28/29

Advancement is always one step from the current cursor (the stored
``next_execution_date``). A clamped day is therefore not restored later: a
template due Jan 31 runs Feb 28, then Mar 28. Expansion for the calendar and
the processing job share :func:`advance`, so a projected occurrence is exactly
the date the job will later materialize.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from dateutil.relativedelta import relativedelta

from .errors import DataError
from .logging_setup import get_logger
from .models import RecurringTemplate

# Safety bound on occurrences emitted per template per query. Guards against
# runaway loops from misconfigured templates (e.g. a daily template whose
# cursor sits years before the queried range); it is not a business rule.
MAX_OCCURRENCES_PER_TEMPLATE: int = 200

_STEPS: dict[str, relativedelta] = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
    "yearly": relativedelta(years=1),
}

_logger = get_logger("personal_finance.recurrence")


def advance(day: date, frequency: str) -> date:
    """Return the occurrence after ``day`` for ``frequency``.

    Raises :class:`DataError` for an unrecognized frequency.
    """

    step = _STEPS.get(frequency)
    if step is None:
        raise DataError(f"unknown recurrence frequency: {frequency!r}")
    return day + step


def expand_occurrences(
    template: RecurringTemplate,
    start: date,
    end: date,
    *,
    cap: int = MAX_OCCURRENCES_PER_TEMPLATE,
) -> list[date]:
    """Return the template's occurrence dates that fall within ``[start, end]``.

    Walks forward from ``next_execution_date``. Stops when the cursor passes
    ``end``, passes the template's own ``end_date``, or after ``cap``
    occurrences. An unknown frequency stops the walk for this template only;
    whatever was emitted before the failing step is kept.
    """

    cursor = template.next_execution_date
    if cursor is None:
        return []

    last = end if template.end_date is None else min(end, template.end_date)
    out: list[date] = []
    while cursor <= last and len(out) < cap:
        if cursor >= start:
            out.append(cursor)
        try:
            cursor = advance(cursor, template.frequency)
        except DataError:
            _logger.warning(
                "Skipping recurring template %s: unknown frequency %r",
                template.id,
                template.frequency,
            )
            break

    if len(out) >= cap and cursor <= last:
        _logger.warning(
            "Recurring template %s hit the %d occurrence cap for %s..%s",
            template.id,
            cap,
            start.isoformat(),
            end.isoformat(),
        )
    return out


@dataclass(frozen=True, slots=True)
class ExecutionState:
    """Scheduling fields of a template after one occurrence is processed."""

    next_execution_date: date | None
    last_execution_date: date
    is_active: bool


def next_execution_state(
    *, next_execution_date: date, frequency: str, end_date: date | None
) -> ExecutionState:
    """Advance a template past ``next_execution_date``.

    When the following occurrence would land after ``end_date`` the template
    is retired: inactive, with no next execution date.
    """

    following = advance(next_execution_date, frequency)
    if end_date is not None and following > end_date:
        return ExecutionState(
            next_execution_date=None,
            last_execution_date=next_execution_date,
            is_active=False,
        )
    return ExecutionState(
        next_execution_date=following,
        last_execution_date=next_execution_date,
        is_active=True,
    )


__all__ = [
    "MAX_OCCURRENCES_PER_TEMPLATE",
    "ExecutionState",
    "advance",
    "expand_occurrences",
    "next_execution_state",
]
