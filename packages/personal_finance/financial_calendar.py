"""Month view merging actual, recurring and planned transactions.

``CalendarAggregator.compute_month`` answers "what happens to my money this
month": it reads the three sources concurrently, expands recurring templates
into dated occurrences, and folds everything into one dense mapping of days
plus a summary.

Pipeline
--------
1. Normalize the month to ``[first day, last day]``.
2. Fan out three independent reads (actual transactions in range; planned
   transactions in range with status pending/confirmed; active recurring
   templates not ended before the first day). All three must succeed; any
   failure surfaces as :class:`UpstreamUnavailableError` and no partial
   calendar is returned.
3. Expand each template into occurrences within the range
   (:func:`recurrence.expand_occurrences`). A template with unusable data
   (unknown frequency, unparseable stored date) is skipped with a warning;
   the rest of the month is still computed.
4. Seed one empty :class:`CalendarDay` per date in range, then merge actual,
   recurring and planned impacts in that order (the per-day display order).
   A source row dated outside the range is logged and ignored.

Invariants
----------
- ``days`` has exactly one entry per date of the month, ascending.
- Each day's ``total_impact`` is the sum of its impacts' ``signed_impact``;
  ``transaction_count`` is their number.
- ``summary.net_projected`` equals total income minus total expenses over all
  three sources, which is also the sum of every day's ``total_impact``.
"""

from __future__ import annotations

import calendar
import os
from collections.abc import Callable
from datetime import date, timedelta
from typing import Any, Protocol

from db.client import get_engine, session_scope
from sqlalchemy.exc import SQLAlchemyError

from . import stores
from .errors import PersonalFinanceError, UpstreamUnavailableError
from .fanout import fan_out
from .logging_setup import get_logger
from .models import (
    CalendarDay,
    Impact,
    LedgerEntry,
    MonthCalendar,
    MonthSummary,
    RecurringTemplate,
    signed_impact,
)
from .recurrence import MAX_OCCURRENCES_PER_TEMPLATE, expand_occurrences

_logger = get_logger("personal_finance.financial_calendar")

_WORKERS_ENV = "PF_CALENDAR_FETCH_WORKERS"
_MAX_FETCH_WORKERS = 3


class CalendarSources(Protocol):
    """The three reads the aggregator needs; each call is independent."""

    def find_transactions(self, *, user_id: int, start: date, end: date) -> list[LedgerEntry]: ...

    def find_planned(self, *, user_id: int, start: date, end: date) -> list[LedgerEntry]: ...

    def find_active_recurring(
        self, *, user_id: int, not_ended_before: date
    ) -> list[RecurringTemplate]: ...


class SqlCalendarSources:
    """:class:`CalendarSources` over the ``pf_*`` tables.

    Every call opens its own session so calls can run on separate threads.
    Driver and connection errors become :class:`UpstreamUnavailableError`.
    """

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url
        # Bind the shared engine up front; worker threads then only open sessions.
        get_engine(database_url=database_url)

    def _read(self, what: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            with session_scope(database_url=self._database_url) as session:
                return fn(session, **kwargs)
        except SQLAlchemyError as e:
            raise UpstreamUnavailableError(f"failed to read {what}: {e}") from e

    def find_transactions(self, *, user_id: int, start: date, end: date) -> list[LedgerEntry]:
        return self._read(
            "transactions", stores.find_transactions, user_id=user_id, start=start, end=end
        )

    def find_planned(self, *, user_id: int, start: date, end: date) -> list[LedgerEntry]:
        return self._read(
            "planned transactions", stores.find_planned, user_id=user_id, start=start, end=end
        )

    def find_active_recurring(
        self, *, user_id: int, not_ended_before: date
    ) -> list[RecurringTemplate]:
        return self._read(
            "recurring transactions",
            stores.find_active_recurring,
            user_id=user_id,
            not_ended_before=not_ended_before,
        )


def month_bounds(month: date) -> tuple[date, date]:
    """Return the first and last day of the month containing ``month``."""

    last_day = calendar.monthrange(month.year, month.month)[1]
    return month.replace(day=1), month.replace(day=last_day)


def _resolve_fetch_workers() -> int:
    raw = os.getenv(_WORKERS_ENV)
    try:
        n = int(raw) if raw else _MAX_FETCH_WORKERS
    except ValueError:
        _logger.warning("Ignoring invalid %s=%r", _WORKERS_ENV, raw)
        n = _MAX_FETCH_WORKERS
    return max(1, min(n, _MAX_FETCH_WORKERS))


def _impact(entry: LedgerEntry | RecurringTemplate, *, status: str | None = None) -> Impact:
    return Impact(
        id=entry.id,
        description=entry.description,
        amount=entry.amount,
        type=entry.type,
        account_id=entry.account_id,
        category_id=entry.category_id,
        signed_impact=signed_impact(entry.type, entry.amount),
        status=status,
    )


def _in_month(days: dict[date, CalendarDay], source: str, entry: LedgerEntry) -> bool:
    # Sources are asked for the month only; anything else is dropped, not merged.
    if entry.day in days:
        return True
    _logger.warning("Ignoring %s entry %s dated %s outside the month", source, entry.id, entry.day)
    return False


class CalendarAggregator:
    def __init__(
        self,
        sources: CalendarSources | None = None,
        *,
        max_workers: int | None = None,
        occurrence_cap: int = MAX_OCCURRENCES_PER_TEMPLATE,
    ) -> None:
        self._sources = sources if sources is not None else SqlCalendarSources()
        self._max_workers = max_workers or _resolve_fetch_workers()
        self._occurrence_cap = occurrence_cap

    def _fetch(self, user_id: int, start: date, end: date) -> dict[str, list[Any]]:
        src = self._sources
        calls: dict[str, Callable[[], list[Any]]] = {
            "actual": lambda: src.find_transactions(user_id=user_id, start=start, end=end),
            "planned": lambda: src.find_planned(user_id=user_id, start=start, end=end),
            "recurring": lambda: src.find_active_recurring(
                user_id=user_id, not_ended_before=start
            ),
        }
        try:
            return fan_out(calls, max_workers=self._max_workers, thread_name_prefix="pf-calendar")
        except PersonalFinanceError:
            raise
        except Exception as e:
            raise UpstreamUnavailableError(f"calendar source failed: {e}") from e

    def compute_month(self, user_id: int, month: date) -> MonthCalendar:
        """Build the calendar for the month containing ``month``."""

        start, end = month_bounds(month)
        fetched = self._fetch(user_id, start, end)

        days: dict[date, CalendarDay] = {}
        cursor = start
        while cursor <= end:
            days[cursor] = CalendarDay(date=cursor)
            cursor += timedelta(days=1)
        summary = MonthSummary()

        for entry in fetched["actual"]:
            if _in_month(days, "actual", entry):
                days[entry.day].add("actual", _impact(entry))
                summary.add("actual", entry.type, entry.amount)

        for template in fetched["recurring"]:
            for occurrence in expand_occurrences(template, start, end, cap=self._occurrence_cap):
                days[occurrence].add("recurring", _impact(template))
                summary.add("recurring", template.type, template.amount)

        for entry in fetched["planned"]:
            if _in_month(days, "planned", entry):
                days[entry.day].add("planned", _impact(entry, status=entry.status))
                summary.add("planned", entry.type, entry.amount)

        _logger.debug(
            "Calendar %s for user %s: %d item(s), net %s",
            start.strftime("%Y-%m"),
            user_id,
            summary.total_transactions,
            summary.net_projected,
        )
        return MonthCalendar(start=start, end=end, days=days, summary=summary)

    def get_day_detail(self, user_id: int, day: date) -> CalendarDay:
        """Return one day of the containing month; an empty day when nothing is scheduled."""

        month = self.compute_month(user_id, day)
        return month.days.get(day) or CalendarDay(date=day)


__all__ = [
    "CalendarSources",
    "SqlCalendarSources",
    "CalendarAggregator",
    "month_bounds",
]
