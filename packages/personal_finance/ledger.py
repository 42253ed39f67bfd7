"""Ledger writes that keep account balances and budgets in step.

Balance invariant
-----------------
For every account::

    balance == opening balance + Σ income − Σ (expense + transfer)

over the account's transactions. Every write here adjusts balances with a
single SQL increment so concurrent writers cannot lose updates:

- create: apply the new row's signed impact to its account;
- update: reverse the old impact on the old account, then apply the new
  impact on the (possibly different) new account;
- delete: reverse the old impact.

Budgets tracking an affected expense category are recalculated in the same
session. Callers own the transaction (``db.client.session_scope``).
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from db.models.finance import PfAccount, PfTransaction
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .budgets import recalculate_budgets_for_category
from .errors import ValidationError
from .logging_setup import get_logger
from .models import (
    ZERO,
    TransactionInput,
    TransactionUpdate,
    parse_input,
    signed_impact,
)
from .stores import (
    get_owned_account,
    get_owned_category,
    get_owned_transaction,
    to_money,
)

_logger = get_logger("personal_finance.ledger")

_REQUIRED_FIELDS = ("account_id", "category_id", "type", "amount", "transaction_date")


def _shift_balance(session: Session, account_id: int, delta: Decimal) -> None:
    if delta == 0:
        return
    session.execute(
        update(PfAccount)
        .where(PfAccount.id == account_id)
        .values(balance=PfAccount.balance + delta, updated_at=func.now())
    )


def _refresh_budgets(session: Session, user_id: int, category_ids: set[int]) -> None:
    for category_id in sorted(category_ids):
        recalculate_budgets_for_category(session, user_id=user_id, category_id=category_id)


def create_transaction(
    session: Session,
    *,
    user_id: int,
    data: TransactionInput | Mapping[str, Any],
) -> PfTransaction:
    """Insert a transaction for ``user_id`` and apply it to its account."""

    payload = parse_input(TransactionInput, data)
    get_owned_account(session, user_id=user_id, account_id=payload.account_id)
    get_owned_category(session, user_id=user_id, category_id=payload.category_id)

    row = PfTransaction(user_id=user_id, **payload.model_dump())
    session.add(row)
    session.flush()

    _shift_balance(session, row.account_id, signed_impact(row.type, payload.amount))
    if row.type == "expense":
        _refresh_budgets(session, user_id, {row.category_id})
    session.flush()

    _logger.debug(
        "Created transaction %s (%s %s) on account %s",
        row.id,
        row.type,
        payload.amount,
        row.account_id,
    )
    return row


def update_transaction(
    session: Session,
    *,
    user_id: int,
    transaction_id: int,
    changes: TransactionUpdate | Mapping[str, Any],
) -> PfTransaction:
    """Edit a transaction, re-balancing old and new accounts."""

    patch = parse_input(TransactionUpdate, changes)
    row = get_owned_transaction(session, user_id=user_id, transaction_id=transaction_id)
    fields = patch.model_dump(exclude_unset=True)

    # All checks run before any mutation.
    for name in _REQUIRED_FIELDS:
        if name in fields and fields[name] is None:
            raise ValidationError(f"{name} cannot be cleared")
    if "account_id" in fields:
        get_owned_account(session, user_id=user_id, account_id=fields["account_id"])
    if "category_id" in fields:
        get_owned_category(session, user_id=user_id, category_id=fields["category_id"])

    old_account = row.account_id
    old_impact = signed_impact(row.type, to_money(row.amount))
    old_category = row.category_id
    old_type = row.type

    for name, value in fields.items():
        setattr(row, name, value)
    row.updated_at = datetime.now(UTC)
    session.flush()

    new_impact = signed_impact(row.type, to_money(row.amount))
    if old_account != row.account_id or old_impact != new_impact:
        _shift_balance(session, old_account, -old_impact)
        _shift_balance(session, row.account_id, new_impact)

    touched: set[int] = set()
    if old_type == "expense":
        touched.add(old_category)
    if row.type == "expense":
        touched.add(row.category_id)
    _refresh_budgets(session, user_id, touched)
    session.flush()
    return row


def delete_transaction(session: Session, *, user_id: int, transaction_id: int) -> None:
    """Delete a transaction and reverse its effect on the account."""

    row = get_owned_transaction(session, user_id=user_id, transaction_id=transaction_id)
    account_id = row.account_id
    impact = signed_impact(row.type, to_money(row.amount))
    category_id = row.category_id
    was_expense = row.type == "expense"

    session.delete(row)
    session.flush()
    _shift_balance(session, account_id, -impact)
    if was_expense:
        _refresh_budgets(session, user_id, {category_id})
    session.flush()


def recompute_account_balance(
    session: Session, *, account_id: int, opening_balance: Decimal
) -> Decimal:
    """Recompute an account balance directly from its transactions."""

    rows = session.execute(
        select(PfTransaction.type, PfTransaction.amount).where(
            PfTransaction.account_id == account_id
        )
    ).all()
    total = sum((signed_impact(t, to_money(a)) for t, a in rows), ZERO)
    return to_money(opening_balance) + total


__all__ = [
    "create_transaction",
    "update_transaction",
    "delete_transaction",
    "recompute_account_balance",
]
