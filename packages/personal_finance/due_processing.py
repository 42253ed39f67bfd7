"""Batch jobs that turn due planned and recurring items into transactions.

Both jobs follow the same shape:

1. Scan the due items in one short read transaction and snapshot them.
2. Process each item in its own ``session_scope`` so one failure never rolls
   back another item's work. Failures are logged and reported as
   ``ItemOutcome(status="error")``; the batch keeps going.
3. Return a :class:`ProcessResult`.

Overlapping runs (two cron invocations, a run racing a manual conversion) are
safe without any job-level lock: each item is claimed with a compare-and-swap
and an item lost to another writer is reported as ``skipped``.

With ``dry_run=True`` nothing is written; each item that would be processed
is reported as ``would_convert``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from db.client import session_scope
from sqlalchemy.exc import SQLAlchemyError

from .errors import ConversionConflictError, DataError, UpstreamUnavailableError
from .ledger import create_transaction
from .logging_setup import get_logger
from .models import ItemOutcome, ProcessResult, TransactionInput
from .planned import convert_planned
from .recurrence import MAX_OCCURRENCES_PER_TEMPLATE, ExecutionState, next_execution_state
from .stores import advance_recurring_if, find_due_planned, find_due_recurring, to_money

_logger = get_logger("personal_finance.due_processing")


# ---------------------------
# Planned transactions
# ---------------------------


@dataclass(frozen=True, slots=True)
class _DuePlanned:
    id: int
    user_id: int
    description: str
    amount: Decimal
    planned_date: date


def _scan_due_planned(
    *, today: date, user_id: int | None, database_url: str | None
) -> list[_DuePlanned]:
    try:
        with session_scope(database_url=database_url) as session:
            return [
                _DuePlanned(
                    id=r.id,
                    user_id=r.user_id,
                    description=r.description,
                    amount=to_money(r.amount),
                    planned_date=r.planned_date,
                )
                for r in find_due_planned(session, today=today, user_id=user_id)
            ]
    except SQLAlchemyError as e:
        raise UpstreamUnavailableError(f"failed to scan due planned transactions: {e}") from e


def process_due_planned(
    *,
    today: date | None = None,
    dry_run: bool = False,
    user_id: int | None = None,
    database_url: str | None = None,
) -> ProcessResult:
    """Convert every open, auto-converting planned transaction dated on or before ``today``."""

    today = today or date.today()
    due = _scan_due_planned(today=today, user_id=user_id, database_url=database_url)
    result = ProcessResult(dry_run=dry_run)
    _logger.info("Found %d planned transaction(s) due on or before %s", len(due), today)

    for item in due:
        base = {
            "item_id": item.id,
            "user_id": item.user_id,
            "description": item.description,
            "amount": item.amount,
            "day": item.planned_date,
        }
        if dry_run:
            result.outcomes.append(ItemOutcome(**base, status="would_convert"))
            continue

        try:
            with session_scope(database_url=database_url) as session:
                tx = convert_planned(
                    session, user_id=item.user_id, planned_id=item.id, now=datetime.now()
                )
                tx_id = tx.id
        except ConversionConflictError as e:
            _logger.info("Skipping planned transaction %s: %s", item.id, e)
            result.outcomes.append(ItemOutcome(**base, status="skipped", error=str(e)))
            continue
        except Exception as e:
            _logger.exception("Failed to convert planned transaction %s", item.id)
            result.outcomes.append(ItemOutcome(**base, status="error", error=str(e)))
            continue

        result.outcomes.append(ItemOutcome(**base, status="converted", transaction_id=tx_id))

    _logger.info(
        "Planned processing finished: processed=%d skipped=%d errors=%d dry_run=%s",
        result.processed,
        result.skipped,
        result.errors,
        dry_run,
    )
    return result


# ---------------------------
# Recurring transactions
# ---------------------------


@dataclass(frozen=True, slots=True)
class _DueTemplate:
    id: int
    user_id: int
    account_id: int
    category_id: int
    type: str
    description: str
    amount: Decimal
    frequency: str
    next_execution_date: date
    end_date: date | None


def _scan_due_recurring(
    *, today: date, user_id: int | None, database_url: str | None
) -> list[_DueTemplate]:
    try:
        with session_scope(database_url=database_url) as session:
            return [
                _DueTemplate(
                    id=r.id,
                    user_id=r.user_id,
                    account_id=r.account_id,
                    category_id=r.category_id,
                    type=r.type,
                    description=r.description,
                    amount=to_money(r.amount),
                    frequency=r.frequency,
                    next_execution_date=r.next_execution_date,
                    end_date=r.end_date,
                )
                for r in find_due_recurring(session, today=today, user_id=user_id)
            ]
    except SQLAlchemyError as e:
        raise UpstreamUnavailableError(f"failed to scan due recurring transactions: {e}") from e


def _materialize(
    template: _DueTemplate, occurrence: date, database_url: str | None
) -> tuple[int | None, ExecutionState]:
    """Advance ``template`` past ``occurrence`` and record the transaction.

    Returns ``(transaction_id, state)``; ``transaction_id`` is ``None`` when
    another writer already advanced the template.
    """

    state = next_execution_state(
        next_execution_date=occurrence,
        frequency=template.frequency,
        end_date=template.end_date,
    )
    with session_scope(database_url=database_url) as session:
        won = advance_recurring_if(
            session,
            recurring_id=template.id,
            expected_next=occurrence,
            next_execution_date=state.next_execution_date,
            last_execution_date=state.last_execution_date,
            is_active=state.is_active,
        )
        if not won:
            return None, state
        tx = create_transaction(
            session,
            user_id=template.user_id,
            data=TransactionInput(
                account_id=template.account_id,
                category_id=template.category_id,
                type=template.type,
                amount=template.amount,
                transaction_date=occurrence,
                description=template.description,
                recurring_transaction_id=template.id,
            ),
        )
        return tx.id, state


def process_due_recurring(
    *,
    today: date | None = None,
    dry_run: bool = False,
    user_id: int | None = None,
    database_url: str | None = None,
) -> ProcessResult:
    """Materialize every due occurrence of every active recurring template.

    A template that fell behind is caught up one occurrence at a time (each in
    its own DB transaction), up to ``MAX_OCCURRENCES_PER_TEMPLATE`` per run.
    """

    today = today or date.today()
    templates = _scan_due_recurring(today=today, user_id=user_id, database_url=database_url)
    result = ProcessResult(dry_run=dry_run)
    _logger.info("Found %d recurring template(s) due on or before %s", len(templates), today)

    for template in templates:
        cursor: date | None = template.next_execution_date
        emitted = 0
        while cursor is not None and cursor <= today and emitted < MAX_OCCURRENCES_PER_TEMPLATE:
            if template.end_date is not None and cursor > template.end_date:
                break
            base = {
                "item_id": template.id,
                "user_id": template.user_id,
                "description": template.description,
                "amount": template.amount,
                "day": cursor,
            }
            emitted += 1

            if dry_run:
                result.outcomes.append(ItemOutcome(**base, status="would_convert"))
                try:
                    cursor = next_execution_state(
                        next_execution_date=cursor,
                        frequency=template.frequency,
                        end_date=template.end_date,
                    ).next_execution_date
                except DataError as e:
                    _logger.warning("Recurring template %s: %s", template.id, e)
                    break
                continue

            try:
                tx_id, state = _materialize(template, cursor, database_url)
            except Exception as e:
                _logger.exception(
                    "Failed to process recurring template %s for %s", template.id, cursor
                )
                result.outcomes.append(ItemOutcome(**base, status="error", error=str(e)))
                break

            if tx_id is None:
                _logger.info(
                    "Skipping recurring template %s for %s: already advanced",
                    template.id,
                    cursor,
                )
                result.outcomes.append(
                    ItemOutcome(**base, status="skipped", error="already advanced")
                )
                break

            result.outcomes.append(ItemOutcome(**base, status="converted", transaction_id=tx_id))
            cursor = state.next_execution_date

    _logger.info(
        "Recurring processing finished: processed=%d skipped=%d errors=%d dry_run=%s",
        result.processed,
        result.skipped,
        result.errors,
        dry_run,
    )
    return result


__all__ = ["process_due_planned", "process_due_recurring"]
