"""Domain types for ``personal_finance``.

Three groups live here:

- Snapshots of stored rows (``LedgerEntry``, ``RecurringTemplate``) taken
  inside a DB session so downstream code never touches a detached ORM object.
- Derived, never-persisted views (``Impact``, ``CalendarDay``,
  ``MonthSummary``, ``MonthCalendar``, ``Quote``) and batch reports
  (``ItemOutcome``, ``ProcessResult``).
- Validated input payloads (pydantic) for ledger and planned-transaction
  writes. ``parse_input`` turns pydantic failures into the package's
  :class:`~personal_finance.errors.ValidationError`.

Money is always :class:`decimal.Decimal`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Literal, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .errors import ValidationError

# ---------------------------------------------------------------------------
# Closed value sets
# ---------------------------------------------------------------------------

TransactionType = Literal["income", "expense", "transfer"]
TemplateType = Literal["income", "expense"]
Frequency = Literal["daily", "weekly", "monthly", "quarterly", "yearly"]
PlannedStatus = Literal["pending", "confirmed", "converted", "cancelled"]
type Source = Literal["actual", "recurring", "planned"]

FREQUENCIES: tuple[str, ...] = ("daily", "weekly", "monthly", "quarterly", "yearly")
OPEN_PLANNED_STATUSES: tuple[str, ...] = ("pending", "confirmed")
TERMINAL_PLANNED_STATUSES: tuple[str, ...] = ("converted", "cancelled")

ZERO = Decimal("0.00")
CENTS = Decimal("0.01")


def signed_impact(type_: str, amount: Decimal) -> Decimal:
    """Return ``+amount`` for income and ``-amount`` for everything else."""

    return amount if type_ == "income" else -amount


# ---------------------------------------------------------------------------
# Row snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """An actual or planned transaction as seen by the calendar."""

    id: int
    day: date
    description: str | None
    amount: Decimal
    type: str
    account_id: int
    category_id: int
    # Planned rows only.
    status: str | None = None


@dataclass(frozen=True, slots=True)
class RecurringTemplate:
    """A recurring-transaction definition, detached from the session."""

    id: int
    description: str
    amount: Decimal
    type: str
    account_id: int
    category_id: int
    frequency: str
    start_date: date
    next_execution_date: date | None
    end_date: date | None = None


# ---------------------------------------------------------------------------
# Calendar views
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Impact:
    """One line on a calendar day with its signed contribution."""

    id: int
    description: str | None
    amount: Decimal
    type: str
    account_id: int
    category_id: int
    signed_impact: Decimal
    status: str | None = None


@dataclass(slots=True)
class CalendarDay:
    date: date
    actual: list[Impact] = field(default_factory=list)
    recurring: list[Impact] = field(default_factory=list)
    planned: list[Impact] = field(default_factory=list)
    total_impact: Decimal = ZERO
    transaction_count: int = 0
    has_transactions: bool = False

    def add(self, source: Source, impact: Impact) -> None:
        getattr(self, source).append(impact)
        self.total_impact += impact.signed_impact
        self.transaction_count += 1
        self.has_transactions = True

    @property
    def entries(self) -> list[tuple[Source, Impact]]:
        """All impacts in display order: actual, then recurring, then planned."""

        return (
            [("actual", i) for i in self.actual]
            + [("recurring", i) for i in self.recurring]
            + [("planned", i) for i in self.planned]
        )


@dataclass(slots=True)
class MonthSummary:
    actual_income: Decimal = ZERO
    actual_expenses: Decimal = ZERO
    recurring_income: Decimal = ZERO
    recurring_expenses: Decimal = ZERO
    planned_income: Decimal = ZERO
    planned_expenses: Decimal = ZERO
    total_transactions: int = 0

    def add(self, source: Source, type_: str, amount: Decimal) -> None:
        bucket = f"{source}_income" if type_ == "income" else f"{source}_expenses"
        setattr(self, bucket, getattr(self, bucket) + amount)
        self.total_transactions += 1

    @property
    def total_income(self) -> Decimal:
        return self.actual_income + self.recurring_income + self.planned_income

    @property
    def total_expenses(self) -> Decimal:
        return self.actual_expenses + self.recurring_expenses + self.planned_expenses

    @property
    def net_projected(self) -> Decimal:
        return self.total_income - self.total_expenses


@dataclass(frozen=True, slots=True)
class MonthCalendar:
    """Result of :meth:`CalendarAggregator.compute_month`.

    ``days`` is dense: every date in ``[start, end]`` has an entry, in
    ascending order.
    """

    start: date
    end: date
    days: dict[date, CalendarDay]
    summary: MonthSummary

    @property
    def key(self) -> str:
        return self.start.strftime("%Y-%m")

    @property
    def name(self) -> str:
        return self.start.strftime("%B %Y")


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Quote:
    price: Decimal
    change_24h: Decimal = ZERO

    @property
    def is_available(self) -> bool:
        # A zero quote means "no price", never "worth nothing".
        return self.price > 0


UNAVAILABLE_QUOTE = Quote(price=Decimal("0"), change_24h=Decimal("0"))


# ---------------------------------------------------------------------------
# Batch reports
# ---------------------------------------------------------------------------

type OutcomeStatus = Literal["converted", "would_convert", "skipped", "error"]


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    item_id: int
    user_id: int
    description: str
    amount: Decimal
    day: date
    status: OutcomeStatus
    transaction_id: int | None = None
    error: str | None = None


@dataclass(slots=True)
class ProcessResult:
    dry_run: bool = False
    outcomes: list[ItemOutcome] = field(default_factory=list)

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def processed(self) -> int:
        return self._count("converted")

    @property
    def would_process(self) -> int:
        return self._count("would_convert")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def errors(self) -> int:
        return self._count("error")

    @property
    def ok(self) -> bool:
        return self.errors == 0


# ---------------------------------------------------------------------------
# Validated inputs
# ---------------------------------------------------------------------------

Money = Annotated[Decimal, Field(gt=0, max_digits=15, decimal_places=2)]


class TransactionInput(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    account_id: int
    category_id: int
    type: TransactionType
    amount: Money
    transaction_date: date
    description: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    reference_number: str | None = Field(default=None, max_length=100)
    recurring_transaction_id: int | None = None


class TransactionUpdate(BaseModel):
    """Partial edit of a transaction; unset fields keep their stored value."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    account_id: int | None = None
    category_id: int | None = None
    type: TransactionType | None = None
    amount: Money | None = None
    transaction_date: date | None = None
    description: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    reference_number: str | None = Field(default=None, max_length=100)


class PlannedInput(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    account_id: int
    category_id: int
    description: str = Field(min_length=1, max_length=255)
    amount: Money
    type: TemplateType
    planned_date: date
    notes: str | None = None
    auto_convert: bool = True


class RecurringInput(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    account_id: int
    category_id: int
    description: str = Field(min_length=1, max_length=255)
    amount: Money
    type: TemplateType
    frequency: Frequency
    start_date: date
    end_date: date | None = None

    @pydantic.model_validator(mode="after")
    def _end_not_before_start(self) -> RecurringInput:
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_input(model: type[ModelT], data: ModelT | Mapping[str, Any]) -> ModelT:
    """Validate ``data`` against ``model``; raise the package ``ValidationError``."""

    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(str(e)) from e


__all__ = [
    "TransactionType",
    "TemplateType",
    "Frequency",
    "PlannedStatus",
    "Source",
    "FREQUENCIES",
    "OPEN_PLANNED_STATUSES",
    "TERMINAL_PLANNED_STATUSES",
    "ZERO",
    "CENTS",
    "signed_impact",
    "LedgerEntry",
    "RecurringTemplate",
    "Impact",
    "CalendarDay",
    "MonthSummary",
    "MonthCalendar",
    "Quote",
    "UNAVAILABLE_QUOTE",
    "ItemOutcome",
    "ProcessResult",
    "TransactionInput",
    "TransactionUpdate",
    "PlannedInput",
    "RecurringInput",
    "parse_input",
]
