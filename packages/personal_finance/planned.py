"""Planned-transaction lifecycle: create, confirm, cancel, convert.

Statuses move ``pending -> confirmed -> converted | cancelled``; ``converted``
and ``cancelled`` are terminal. Every transition is a compare-and-swap on the
stored status (:func:`stores.update_planned_status_if`), so two callers racing
on the same row cannot both win.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from db.models.finance import PfPlannedTransaction, PfTransaction
from sqlalchemy.orm import Session

from .errors import ConversionConflictError
from .ledger import create_transaction
from .logging_setup import get_logger
from .models import OPEN_PLANNED_STATUSES, PlannedInput, TransactionInput, parse_input
from .stores import (
    get_owned_account,
    get_owned_category,
    get_owned_planned,
    to_money,
    update_planned_status_if,
)

_logger = get_logger("personal_finance.planned")

CONVERSION_NOTE = "Converted from planned transaction on {stamp}"


def conversion_notes(existing: str | None, now: datetime) -> str:
    """Append the conversion stamp to ``existing`` notes, separated by a blank line."""

    stamp = CONVERSION_NOTE.format(stamp=now.strftime("%Y-%m-%d %H:%M:%S"))
    return f"{existing}\n\n{stamp}" if existing else stamp


def create_planned(
    session: Session, *, user_id: int, data: PlannedInput | Mapping[str, Any]
) -> PfPlannedTransaction:
    payload = parse_input(PlannedInput, data)
    get_owned_account(session, user_id=user_id, account_id=payload.account_id)
    get_owned_category(session, user_id=user_id, category_id=payload.category_id)

    row = PfPlannedTransaction(user_id=user_id, status="pending", **payload.model_dump())
    session.add(row)
    session.flush()
    return row


def _transition(
    session: Session,
    *,
    user_id: int,
    planned_id: int,
    expected: tuple[str, ...],
    new_status: str,
) -> PfPlannedTransaction:
    row = get_owned_planned(session, user_id=user_id, planned_id=planned_id)
    if row.status not in expected:
        raise ConversionConflictError(
            f"planned transaction {planned_id} is {row.status}, cannot move to {new_status}"
        )
    if not update_planned_status_if(
        session, planned_id=planned_id, expected=expected, new_status=new_status
    ):
        raise ConversionConflictError(
            f"planned transaction {planned_id} changed status concurrently"
        )
    session.refresh(row)
    return row


def confirm_planned(session: Session, *, user_id: int, planned_id: int) -> PfPlannedTransaction:
    """pending -> confirmed."""

    return _transition(
        session,
        user_id=user_id,
        planned_id=planned_id,
        expected=("pending",),
        new_status="confirmed",
    )


def cancel_planned(session: Session, *, user_id: int, planned_id: int) -> PfPlannedTransaction:
    """pending/confirmed -> cancelled."""

    return _transition(
        session,
        user_id=user_id,
        planned_id=planned_id,
        expected=OPEN_PLANNED_STATUSES,
        new_status="cancelled",
    )


def convert_planned(
    session: Session,
    *,
    user_id: int,
    planned_id: int,
    now: datetime | None = None,
) -> PfTransaction:
    """Turn an open planned transaction into a real one.

    The status claim and the ledger insert happen in the caller's transaction:
    if the insert fails the claim rolls back with it. A second conversion of
    the same row raises :class:`ConversionConflictError`, whether it arrives
    after the first or races it.
    """

    planned = get_owned_planned(session, user_id=user_id, planned_id=planned_id)
    if planned.status not in OPEN_PLANNED_STATUSES:
        raise ConversionConflictError(
            f"planned transaction {planned_id} is already {planned.status}"
        )

    claimed = update_planned_status_if(
        session,
        planned_id=planned_id,
        expected=OPEN_PLANNED_STATUSES,
        new_status="converted",
    )
    if not claimed:
        raise ConversionConflictError(
            f"planned transaction {planned_id} was converted or cancelled concurrently"
        )

    stamp_time = now or datetime.now()
    tx = create_transaction(
        session,
        user_id=user_id,
        data=TransactionInput(
            account_id=planned.account_id,
            category_id=planned.category_id,
            type=planned.type,
            amount=to_money(planned.amount),
            transaction_date=planned.planned_date,
            description=planned.description,
            notes=conversion_notes(planned.notes, stamp_time),
        ),
    )
    _logger.info("Converted planned transaction %s into transaction %s", planned_id, tx.id)
    return tx


# ---------------------------
# Due-date helpers
# ---------------------------


def is_due(planned: PfPlannedTransaction, today: date) -> bool:
    return planned.planned_date <= today


def is_overdue(planned: PfPlannedTransaction, today: date) -> bool:
    """Dated before ``today`` and still open."""

    return planned.planned_date < today and planned.status in OPEN_PLANNED_STATUSES


def days_until_due(planned: PfPlannedTransaction, today: date) -> int:
    """Negative when the planned date has passed."""

    return (planned.planned_date - today).days


__all__ = [
    "CONVERSION_NOTE",
    "conversion_notes",
    "create_planned",
    "confirm_planned",
    "cancel_planned",
    "convert_planned",
    "is_due",
    "is_overdue",
    "days_until_due",
]
