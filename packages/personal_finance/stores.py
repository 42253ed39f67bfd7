"""Named store queries over the ``pf_*`` tables.

Every query takes an explicit ``user_id`` (no ambient "current user") and a
caller-owned :class:`~sqlalchemy.orm.Session`; nothing here commits. Owner
lookups (``get_owned_*``) raise :class:`NotFoundError` for rows that are
missing *or* belong to another user, with the same message in both cases.

Status transitions that must not race (planned conversion, recurring
advancement) are exposed as compare-and-swap updates returning whether this
caller won.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from db.models.finance import (
    PfAccount,
    PfBudget,
    PfCategory,
    PfPlannedTransaction,
    PfRecurringTransaction,
    PfTransaction,
)
from sqlalchemy import String, func, or_, select, type_coerce, update
from sqlalchemy.orm import Session

from .errors import DataError, NotFoundError
from .logging_setup import get_logger
from .models import OPEN_PLANNED_STATUSES, ZERO, LedgerEntry, RecurringTemplate

_logger = get_logger("personal_finance.stores")


def to_money(raw: object) -> Decimal:
    """Coerce a DB aggregate (Decimal/float/int/None) to a 2dp Decimal."""

    if raw is None:
        return ZERO
    return Decimal(str(raw)).quantize(Decimal("0.01"))


# ---------------------------------------------------------------------------
# Ownership-scoped lookups
# ---------------------------------------------------------------------------


def get_owned_account(session: Session, *, user_id: int, account_id: int) -> PfAccount:
    row = session.execute(
        select(PfAccount).where(PfAccount.id == account_id, PfAccount.user_id == user_id)
    ).scalar_one_or_none()
    if row is None:
        raise NotFoundError("account", account_id)
    return row


def get_owned_category(session: Session, *, user_id: int, category_id: int) -> PfCategory:
    """Return a category visible to ``user_id`` (own or shared default)."""

    row = session.execute(
        select(PfCategory).where(
            PfCategory.id == category_id,
            or_(PfCategory.user_id == user_id, PfCategory.user_id.is_(None)),
        )
    ).scalar_one_or_none()
    if row is None:
        raise NotFoundError("category", category_id)
    return row


def get_owned_transaction(
    session: Session, *, user_id: int, transaction_id: int
) -> PfTransaction:
    row = session.execute(
        select(PfTransaction).where(
            PfTransaction.id == transaction_id, PfTransaction.user_id == user_id
        )
    ).scalar_one_or_none()
    if row is None:
        raise NotFoundError("transaction", transaction_id)
    return row


def get_owned_planned(
    session: Session, *, user_id: int, planned_id: int
) -> PfPlannedTransaction:
    row = session.execute(
        select(PfPlannedTransaction).where(
            PfPlannedTransaction.id == planned_id, PfPlannedTransaction.user_id == user_id
        )
    ).scalar_one_or_none()
    if row is None:
        raise NotFoundError("planned transaction", planned_id)
    return row


def get_owned_recurring(
    session: Session, *, user_id: int, recurring_id: int
) -> PfRecurringTransaction:
    row = session.execute(
        select(PfRecurringTransaction).where(
            PfRecurringTransaction.id == recurring_id,
            PfRecurringTransaction.user_id == user_id,
        )
    ).scalar_one_or_none()
    if row is None:
        raise NotFoundError("recurring transaction", recurring_id)
    return row


# ---------------------------------------------------------------------------
# Calendar reads (snapshotted to plain records)
# ---------------------------------------------------------------------------


def find_transactions(
    session: Session, *, user_id: int, start: date, end: date
) -> list[LedgerEntry]:
    """Actual transactions for ``user_id`` dated within ``[start, end]``."""

    rows = session.execute(
        select(PfTransaction)
        .where(
            PfTransaction.user_id == user_id,
            PfTransaction.transaction_date >= start,
            PfTransaction.transaction_date <= end,
        )
        .order_by(PfTransaction.transaction_date, PfTransaction.id)
    ).scalars()
    return [
        LedgerEntry(
            id=r.id,
            day=r.transaction_date,
            description=r.description,
            amount=to_money(r.amount),
            type=r.type,
            account_id=r.account_id,
            category_id=r.category_id,
        )
        for r in rows
    ]


def find_planned(
    session: Session,
    *,
    user_id: int,
    start: date,
    end: date,
    statuses: Sequence[str] = OPEN_PLANNED_STATUSES,
) -> list[LedgerEntry]:
    """Planned transactions for ``user_id`` in ``[start, end]`` with the given statuses."""

    rows = session.execute(
        select(PfPlannedTransaction)
        .where(
            PfPlannedTransaction.user_id == user_id,
            PfPlannedTransaction.planned_date >= start,
            PfPlannedTransaction.planned_date <= end,
            PfPlannedTransaction.status.in_(list(statuses)),
        )
        .order_by(PfPlannedTransaction.planned_date, PfPlannedTransaction.id)
    ).scalars()
    return [
        LedgerEntry(
            id=r.id,
            day=r.planned_date,
            description=r.description,
            amount=to_money(r.amount),
            type=r.type,
            account_id=r.account_id,
            category_id=r.category_id,
            status=r.status,
        )
        for r in rows
    ]


def _to_date(raw: Any, *, field: str) -> date | None:
    """Parse a stored ``YYYY-MM-DD`` value; raise :class:`DataError` when it is not a date."""

    if raw is None or isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError as e:
        raise DataError(f"invalid {field} {raw!r}") from e


# Read as plain strings so one corrupt value cannot fail the whole result set.
_RAW_TEMPLATE_DATES = ("start_date", "next_execution_date", "end_date")


def _template(row: Any) -> RecurringTemplate:
    start_date = _to_date(row.start_date, field="start_date")
    if start_date is None:
        raise DataError("missing start_date")
    return RecurringTemplate(
        id=row.id,
        description=row.description,
        amount=to_money(row.amount),
        type=row.type,
        account_id=row.account_id,
        category_id=row.category_id,
        frequency=row.frequency,
        start_date=start_date,
        next_execution_date=_to_date(row.next_execution_date, field="next_execution_date"),
        end_date=_to_date(row.end_date, field="end_date"),
    )


def find_active_recurring(
    session: Session, *, user_id: int, not_ended_before: date
) -> list[RecurringTemplate]:
    """Active templates for ``user_id`` with no end date or ending on/after the bound.

    A template whose stored dates cannot be parsed is logged and left out; the
    other templates are still returned.
    """

    rtx = PfRecurringTransaction
    raw_dates = [
        type_coerce(getattr(rtx, name), String).label(name) for name in _RAW_TEMPLATE_DATES
    ]
    stmt = (
        select(
            rtx.id,
            rtx.description,
            rtx.amount,
            rtx.type,
            rtx.account_id,
            rtx.category_id,
            rtx.frequency,
            *raw_dates,
        )
        .where(
            rtx.user_id == user_id,
            rtx.is_active.is_(True),
            or_(rtx.end_date.is_(None), rtx.end_date >= not_ended_before),
        )
        .order_by(rtx.id)
    )
    templates: list[RecurringTemplate] = []
    for row in session.execute(stmt):
        try:
            templates.append(_template(row))
        except DataError as e:
            _logger.warning("Skipping recurring template %s: %s", row.id, e)
    return templates


# ---------------------------------------------------------------------------
# Batch-job scans
# ---------------------------------------------------------------------------


def find_due_planned(
    session: Session, *, today: date, user_id: int | None = None
) -> list[PfPlannedTransaction]:
    """Open, auto-converting planned rows dated on or before ``today``."""

    stmt = (
        select(PfPlannedTransaction)
        .where(
            PfPlannedTransaction.planned_date <= today,
            PfPlannedTransaction.auto_convert.is_(True),
            PfPlannedTransaction.status.in_(list(OPEN_PLANNED_STATUSES)),
        )
        .order_by(PfPlannedTransaction.planned_date, PfPlannedTransaction.id)
    )
    if user_id is not None:
        stmt = stmt.where(PfPlannedTransaction.user_id == user_id)
    return list(session.execute(stmt).scalars())


def find_upcoming_planned(
    session: Session, *, user_id: int, today: date, days: int = 30
) -> list[PfPlannedTransaction]:
    """Open planned rows dated strictly after ``today`` and within ``days``."""

    return list(
        session.execute(
            select(PfPlannedTransaction)
            .where(
                PfPlannedTransaction.user_id == user_id,
                PfPlannedTransaction.planned_date > today,
                PfPlannedTransaction.planned_date <= today + timedelta(days=days),
                PfPlannedTransaction.status.in_(list(OPEN_PLANNED_STATUSES)),
            )
            .order_by(PfPlannedTransaction.planned_date, PfPlannedTransaction.id)
        ).scalars()
    )


def find_due_recurring(
    session: Session, *, today: date, user_id: int | None = None
) -> list[PfRecurringTransaction]:
    """Active templates whose next execution is on or before ``today``."""

    stmt = (
        select(PfRecurringTransaction)
        .where(
            PfRecurringTransaction.is_active.is_(True),
            PfRecurringTransaction.next_execution_date.is_not(None),
            PfRecurringTransaction.next_execution_date <= today,
        )
        .order_by(PfRecurringTransaction.next_execution_date, PfRecurringTransaction.id)
    )
    if user_id is not None:
        stmt = stmt.where(PfRecurringTransaction.user_id == user_id)
    return list(session.execute(stmt).scalars())


# ---------------------------------------------------------------------------
# Compare-and-swap transitions
# ---------------------------------------------------------------------------


def update_planned_status_if(
    session: Session,
    *,
    planned_id: int,
    expected: Iterable[str],
    new_status: str,
) -> bool:
    """Set ``status`` only if it is currently one of ``expected``.

    Returns ``True`` when exactly this call performed the transition.
    """

    result = session.execute(
        update(PfPlannedTransaction)
        .where(
            PfPlannedTransaction.id == planned_id,
            PfPlannedTransaction.status.in_(list(expected)),
        )
        .values(status=new_status, updated_at=func.now())
    )
    return result.rowcount == 1


def advance_recurring_if(
    session: Session,
    *,
    recurring_id: int,
    expected_next: date,
    next_execution_date: date | None,
    last_execution_date: date,
    is_active: bool,
) -> bool:
    """Move a template's schedule forward only if nobody else already did."""

    result = session.execute(
        update(PfRecurringTransaction)
        .where(
            PfRecurringTransaction.id == recurring_id,
            PfRecurringTransaction.next_execution_date == expected_next,
        )
        .values(
            next_execution_date=next_execution_date,
            last_execution_date=last_execution_date,
            is_active=is_active,
            updated_at=func.now(),
        )
    )
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def sum_expenses(
    session: Session,
    *,
    user_id: int,
    category_id: int,
    start: date,
    end: date | None,
) -> Decimal:
    """Sum of expense transactions for a category within ``[start, end]``."""

    stmt = select(func.coalesce(func.sum(PfTransaction.amount), 0)).where(
        PfTransaction.user_id == user_id,
        PfTransaction.category_id == category_id,
        PfTransaction.type == "expense",
        PfTransaction.transaction_date >= start,
    )
    if end is not None:
        stmt = stmt.where(PfTransaction.transaction_date <= end)
    return to_money(session.execute(stmt).scalar_one())


def sum_confirmed_planned(
    session: Session,
    *,
    user_id: int,
    start: date | None = None,
    end: date,
    account_id: int | None = None,
    category_id: int | None = None,
    type_: str | None = None,
) -> list[tuple[str, Decimal]]:
    """Return ``(type, amount)`` pairs of confirmed planned rows in the window."""

    stmt = select(PfPlannedTransaction.type, PfPlannedTransaction.amount).where(
        PfPlannedTransaction.user_id == user_id,
        PfPlannedTransaction.status == "confirmed",
        PfPlannedTransaction.planned_date <= end,
    )
    if start is not None:
        stmt = stmt.where(PfPlannedTransaction.planned_date >= start)
    if account_id is not None:
        stmt = stmt.where(PfPlannedTransaction.account_id == account_id)
    if category_id is not None:
        stmt = stmt.where(PfPlannedTransaction.category_id == category_id)
    if type_ is not None:
        stmt = stmt.where(PfPlannedTransaction.type == type_)
    return [(t, to_money(a)) for t, a in session.execute(stmt).all()]


def find_budgets(
    session: Session,
    *,
    user_id: int | None = None,
    category_id: int | None = None,
    active_only: bool = True,
) -> list[PfBudget]:
    stmt = select(PfBudget).order_by(PfBudget.id)
    if active_only:
        stmt = stmt.where(PfBudget.is_active.is_(True))
    if user_id is not None:
        stmt = stmt.where(PfBudget.user_id == user_id)
    if category_id is not None:
        stmt = stmt.where(PfBudget.category_id == category_id)
    return list(session.execute(stmt).scalars())


__all__ = [
    "to_money",
    "get_owned_account",
    "get_owned_category",
    "get_owned_transaction",
    "get_owned_planned",
    "get_owned_recurring",
    "find_transactions",
    "find_planned",
    "find_active_recurring",
    "find_due_planned",
    "find_upcoming_planned",
    "find_due_recurring",
    "update_planned_status_if",
    "advance_recurring_if",
    "sum_expenses",
    "sum_confirmed_planned",
    "find_budgets",
]
