from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

import pytest

from personal_finance.errors import UpstreamUnavailableError
from personal_finance.financial_calendar import CalendarAggregator, month_bounds
from personal_finance.models import LedgerEntry, RecurringTemplate


def _entry(
    id: int, day: date, amount: str, type: str, *, status: str | None = None
) -> LedgerEntry:
    return LedgerEntry(
        id=id,
        day=day,
        description=f"item {id}",
        amount=Decimal(amount),
        type=type,
        account_id=1,
        category_id=1,
        status=status,
    )


def _template(
    id: int, next_date: date, amount: str, type: str, frequency: str = "monthly"
) -> RecurringTemplate:
    return RecurringTemplate(
        id=id,
        description=f"template {id}",
        amount=Decimal(amount),
        type=type,
        account_id=1,
        category_id=1,
        frequency=frequency,
        start_date=next_date,
        next_execution_date=next_date,
    )


@dataclass
class FakeSources:
    actual: list[LedgerEntry] = field(default_factory=list)
    planned: list[LedgerEntry] = field(default_factory=list)
    recurring: list[RecurringTemplate] = field(default_factory=list)
    fail: str | None = None
    calls: list[tuple[str, int]] = field(default_factory=list)
    threads: set[str] = field(default_factory=set)

    def _hit(self, name: str, user_id: int) -> None:
        self.calls.append((name, user_id))
        self.threads.add(threading.current_thread().name)
        if self.fail == name:
            raise ConnectionError(f"{name} store down")

    def find_transactions(self, *, user_id, start, end):
        self._hit("actual", user_id)
        return [e for e in self.actual if start <= e.day <= end]

    def find_planned(self, *, user_id, start, end):
        self._hit("planned", user_id)
        return [e for e in self.planned if start <= e.day <= end]

    def find_active_recurring(self, *, user_id, not_ended_before):
        self._hit("recurring", user_id)
        return list(self.recurring)


def test_month_bounds_normalizes_any_day() -> None:
    assert month_bounds(date(2024, 2, 17)) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(date(2025, 12, 31)) == (date(2025, 12, 1), date(2025, 12, 31))


@pytest.mark.parametrize("anchor", [date(2025, 2, 10), date(2024, 2, 1), date(2025, 7, 31)])
def test_every_day_appears_exactly_once(anchor: date) -> None:
    cal = CalendarAggregator(FakeSources()).compute_month(1, anchor)
    start, end = month_bounds(anchor)
    expected = [start + timedelta(days=i) for i in range((end - start).days + 1)]
    assert list(cal.days) == expected
    assert all(not d.has_transactions and d.total_impact == 0 for d in cal.days.values())
    assert cal.start == start and cal.end == end


def test_monthly_rent_projects_into_february() -> None:
    sources = FakeSources(recurring=[_template(7, date(2025, 1, 15), "1000", "expense")])
    cal = CalendarAggregator(sources).compute_month(1, date(2025, 2, 1))

    occupied = [d for d in cal.days.values() if d.has_transactions]
    assert [d.date for d in occupied] == [date(2025, 2, 15)]
    day = cal.days[date(2025, 2, 15)]
    assert len(day.recurring) == 1
    assert day.recurring[0].id == 7
    assert day.recurring[0].signed_impact == Decimal("-1000")
    assert day.total_impact == Decimal("-1000")
    assert cal.summary.recurring_expenses == Decimal("1000")
    assert cal.summary.net_projected == Decimal("-1000")


def test_merge_order_and_totals_match_summary() -> None:
    d = date(2025, 3, 10)
    sources = FakeSources(
        actual=[
            _entry(1, d, "2500.00", "income"),
            _entry(2, date(2025, 3, 3), "42.10", "expense"),
            _entry(3, date(2025, 3, 3), "100.00", "transfer"),
        ],
        planned=[
            _entry(10, d, "300.00", "expense", status="confirmed"),
            _entry(11, date(2025, 3, 28), "75.50", "income", status="pending"),
        ],
        recurring=[
            _template(20, date(2025, 3, 10), "19.99", "expense"),
            _template(21, date(2025, 3, 1), "10.00", "expense", frequency="weekly"),
        ],
    )
    cal = CalendarAggregator(sources).compute_month(1, date(2025, 3, 1))

    day = cal.days[d]
    assert [src for src, _ in day.entries] == ["actual", "recurring", "planned"]
    assert day.planned[0].status == "confirmed"
    assert day.transaction_count == 3
    assert day.total_impact == Decimal("2500.00") - Decimal("19.99") - Decimal("300.00")

    s = cal.summary
    assert s.actual_income == Decimal("2500.00")
    assert s.actual_expenses == Decimal("142.10")
    # weekly from Mar 1: 1, 8, 15, 22, 29
    assert len(cal.days[date(2025, 3, 29)].recurring) == 1
    assert s.recurring_expenses == Decimal("19.99") + 5 * Decimal("10.00")
    assert s.planned_income == Decimal("75.50")
    assert s.planned_expenses == Decimal("300.00")
    assert s.total_transactions == 3 + 2 + 6

    assert sum((x.total_impact for x in cal.days.values()), Decimal("0")) == s.net_projected
    assert s.net_projected == s.total_income - s.total_expenses


def test_unknown_frequency_skips_only_that_template() -> None:
    sources = FakeSources(
        recurring=[
            _template(1, date(2025, 2, 3), "50", "expense", frequency="fortnightly"),
            _template(2, date(2025, 2, 5), "80", "income"),
        ]
    )
    cal = CalendarAggregator(sources).compute_month(1, date(2025, 2, 1))
    # The bad template keeps its first occurrence, then stops.
    assert [i.id for i in cal.days[date(2025, 2, 3)].recurring] == [1]
    assert cal.days[date(2025, 2, 17)].recurring == []
    assert [i.id for i in cal.days[date(2025, 2, 5)].recurring] == [2]


def test_occurrence_cap_is_per_template() -> None:
    sources = FakeSources(
        recurring=[
            _template(1, date(2025, 1, 1), "1", "expense", frequency="daily"),
            _template(2, date(2025, 1, 1), "1", "expense", frequency="daily"),
        ]
    )
    cal = CalendarAggregator(sources, occurrence_cap=10).compute_month(1, date(2025, 1, 1))
    assert cal.summary.total_transactions == 20
    assert cal.days[date(2025, 1, 10)].transaction_count == 2
    assert cal.days[date(2025, 1, 11)].transaction_count == 0


@pytest.mark.parametrize("failing", ["actual", "planned", "recurring"])
def test_any_source_failure_fails_the_whole_month(failing: str) -> None:
    sources = FakeSources(actual=[_entry(1, date(2025, 2, 2), "10", "income")], fail=failing)
    with pytest.raises(UpstreamUnavailableError):
        CalendarAggregator(sources).compute_month(1, date(2025, 2, 1))


def test_fetches_run_on_worker_threads_with_explicit_user() -> None:
    sources = FakeSources()
    CalendarAggregator(sources, max_workers=3).compute_month(42, date(2025, 2, 1))
    assert sorted(sources.calls) == [("actual", 42), ("planned", 42), ("recurring", 42)]
    assert all(name.startswith("pf-calendar") for name in sources.threads)


def test_get_day_detail_returns_placeholder_for_empty_day() -> None:
    sources = FakeSources(actual=[_entry(1, date(2025, 2, 2), "10", "income")])
    agg = CalendarAggregator(sources)

    busy = agg.get_day_detail(1, date(2025, 2, 2))
    assert busy.total_impact == Decimal("10")
    assert busy.transaction_count == 1

    quiet = agg.get_day_detail(1, date(2025, 2, 3))
    assert quiet.date == date(2025, 2, 3)
    assert quiet.entries == []
    assert quiet.total_impact == 0
    assert not quiet.has_transactions


class UnfilteredSources(FakeSources):
    """Returns every stored row regardless of the requested range."""

    def find_transactions(self, *, user_id, start, end):
        self._hit("actual", user_id)
        return list(self.actual)

    def find_planned(self, *, user_id, start, end):
        self._hit("planned", user_id)
        return list(self.planned)


def test_rows_outside_the_month_are_ignored(caplog: pytest.LogCaptureFixture) -> None:
    sources = UnfilteredSources(
        actual=[
            _entry(1, date(2025, 2, 2), "10", "income"),
            _entry(2, date(2025, 3, 1), "99", "income"),
        ],
        planned=[_entry(3, date(2025, 1, 31), "50", "expense", status="pending")],
    )
    caplog.set_level(logging.WARNING, logger="personal_finance")

    cal = CalendarAggregator(sources).compute_month(1, date(2025, 2, 1))

    assert len(cal.days) == 28
    assert cal.summary.total_transactions == 1
    assert cal.summary.net_projected == Decimal("10")
    ignored = [r.getMessage() for r in caplog.records if "outside the month" in r.getMessage()]
    assert ignored == [
        "Ignoring actual entry 2 dated 2025-03-01 outside the month",
        "Ignoring planned entry 3 dated 2025-01-31 outside the month",
    ]
