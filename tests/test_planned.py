from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest
from db.client import session_scope
from db.models.finance import PfAccount, PfPlannedTransaction, PfTransaction

import personal_finance.planned as planned_mod
from personal_finance.errors import ConversionConflictError, NotFoundError, ValidationError
from personal_finance.planned import (
    cancel_planned,
    confirm_planned,
    conversion_notes,
    convert_planned,
    create_planned,
    days_until_due,
    is_due,
    is_overdue,
)
from personal_finance.stores import find_upcoming_planned
from tests.helpers.db import SeededLedger, add_planned, seed_user_ledger

NOW = datetime(2025, 3, 14, 9, 30, 5)


def _planned(db_url: str, ledger: SeededLedger, **overrides) -> int:
    kwargs = {
        "database_url": db_url,
        "user_id": ledger.user_id,
        "account_id": ledger.account_id,
        "category_id": ledger.salary_category_id,
        "amount": Decimal("500.00"),
        "type": "income",
        "planned_date": date(2025, 3, 13),
        "description": "Invoice 42",
    } | overrides
    return add_planned(**kwargs)


def test_conversion_notes_format() -> None:
    stamp = "Converted from planned transaction on 2025-03-14 09:30:05"
    assert conversion_notes(None, NOW) == stamp
    assert conversion_notes("client B", NOW) == (
        f"client B\n\n{stamp}"
    )


def test_convert_creates_transaction_and_marks_converted(
    db_url: str, ledger: SeededLedger
) -> None:
    planned_id = _planned(db_url, ledger, notes="client B")

    with session_scope(database_url=db_url) as s:
        tx = convert_planned(s, user_id=ledger.user_id, planned_id=planned_id, now=NOW)
        tx_id = tx.id

    with session_scope(database_url=db_url) as s:
        tx = s.get(PfTransaction, tx_id)
        assert tx.type == "income"
        assert tx.amount == Decimal("500.00")
        assert tx.transaction_date == date(2025, 3, 13)
        assert tx.description == "Invoice 42"
        assert tx.notes.endswith("Converted from planned transaction on 2025-03-14 09:30:05")
        assert tx.notes.startswith("client B\n\n")
        assert s.get(PfPlannedTransaction, planned_id).status == "converted"
        assert s.get(PfAccount, ledger.account_id).balance == Decimal("500.00")


def test_converting_twice_is_rejected(db_url: str, ledger: SeededLedger) -> None:
    planned_id = _planned(db_url, ledger, status="confirmed")

    with session_scope(database_url=db_url) as s:
        convert_planned(s, user_id=ledger.user_id, planned_id=planned_id, now=NOW)

    with pytest.raises(ConversionConflictError):
        with session_scope(database_url=db_url) as s:
            convert_planned(s, user_id=ledger.user_id, planned_id=planned_id, now=NOW)

    with session_scope(database_url=db_url) as s:
        assert s.query(PfTransaction).count() == 1
        assert s.get(PfAccount, ledger.account_id).balance == Decimal("500.00")


def test_losing_the_status_claim_is_a_conflict(
    db_url: str, ledger: SeededLedger, monkeypatch: pytest.MonkeyPatch
) -> None:
    planned_id = _planned(db_url, ledger)
    # Another writer converts the row between our read and our claim.
    monkeypatch.setattr(planned_mod, "update_planned_status_if", lambda *a, **kw: False)
    with pytest.raises(ConversionConflictError):
        with session_scope(database_url=db_url) as s:
            convert_planned(s, user_id=ledger.user_id, planned_id=planned_id, now=NOW)

    with session_scope(database_url=db_url) as s:
        assert s.query(PfTransaction).count() == 0


def test_failed_insert_rolls_back_the_claim(
    db_url: str, ledger: SeededLedger, monkeypatch: pytest.MonkeyPatch
) -> None:
    planned_id = _planned(db_url, ledger)

    def _boom(*_a, **_kw):
        raise RuntimeError("disk full")

    monkeypatch.setattr(planned_mod, "create_transaction", _boom)
    with pytest.raises(RuntimeError):
        with session_scope(database_url=db_url) as s:
            convert_planned(s, user_id=ledger.user_id, planned_id=planned_id, now=NOW)

    with session_scope(database_url=db_url) as s:
        assert s.get(PfPlannedTransaction, planned_id).status == "pending"


def test_other_users_planned_is_not_found(db_url: str, ledger: SeededLedger) -> None:
    other = seed_user_ledger(database_url=db_url, email="bo@example.com")
    planned_id = _planned(db_url, ledger)

    with pytest.raises(NotFoundError):
        with session_scope(database_url=db_url) as s:
            convert_planned(s, user_id=other.user_id, planned_id=planned_id, now=NOW)

    with session_scope(database_url=db_url) as s:
        assert s.get(PfPlannedTransaction, planned_id).status == "pending"


def test_status_transitions(db_url: str, ledger: SeededLedger) -> None:
    with session_scope(database_url=db_url) as s:
        row = create_planned(
            s,
            user_id=ledger.user_id,
            data={
                "account_id": ledger.account_id,
                "category_id": ledger.rent_category_id,
                "description": "Deposit",
                "amount": "750.00",
                "type": "expense",
                "planned_date": date(2025, 4, 1),
            },
        )
        planned_id = row.id
        assert row.status == "pending"
        assert row.auto_convert is True

    with session_scope(database_url=db_url) as s:
        row = confirm_planned(s, user_id=ledger.user_id, planned_id=planned_id)
        assert row.status == "confirmed"

    with pytest.raises(ConversionConflictError):
        with session_scope(database_url=db_url) as s:
            confirm_planned(s, user_id=ledger.user_id, planned_id=planned_id)

    with session_scope(database_url=db_url) as s:
        row = cancel_planned(s, user_id=ledger.user_id, planned_id=planned_id)
        assert row.status == "cancelled"

    for op in (cancel_planned, convert_planned):
        with pytest.raises(ConversionConflictError):
            with session_scope(database_url=db_url) as s:
                op(s, user_id=ledger.user_id, planned_id=planned_id)


def test_create_planned_validates_input(db_url: str, ledger: SeededLedger) -> None:
    with pytest.raises(ValidationError):
        with session_scope(database_url=db_url) as s:
            create_planned(
                s,
                user_id=ledger.user_id,
                data={
                    "account_id": ledger.account_id,
                    "category_id": ledger.rent_category_id,
                    "description": "Transfer",
                    "amount": "10.00",
                    "type": "transfer",
                    "planned_date": date(2025, 4, 1),
                },
            )


def test_due_helpers(db_url: str, ledger: SeededLedger) -> None:
    today = date(2025, 3, 14)
    past = _planned(db_url, ledger, planned_date=date(2025, 3, 10))
    due_today = _planned(db_url, ledger, planned_date=today)
    soon = _planned(db_url, ledger, planned_date=date(2025, 3, 20))
    later = _planned(db_url, ledger, planned_date=date(2025, 5, 1))
    done = _planned(db_url, ledger, planned_date=date(2025, 3, 1), status="converted")

    with session_scope(database_url=db_url) as s:
        rows = {i: s.get(PfPlannedTransaction, i) for i in (past, due_today, soon, later, done)}

        assert is_due(rows[past], today) and is_due(rows[due_today], today)
        assert not is_due(rows[soon], today)
        assert is_overdue(rows[past], today)
        assert not is_overdue(rows[due_today], today)
        assert not is_overdue(rows[done], today)
        assert days_until_due(rows[soon], today) == 6
        assert days_until_due(rows[past], today) == -4

        upcoming = find_upcoming_planned(s, user_id=ledger.user_id, today=today, days=30)
        assert [r.id for r in upcoming] == [soon]
