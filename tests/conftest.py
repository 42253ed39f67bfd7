"""Pytest configuration for test isolation.

The engine in ``db.client`` is process-wide and binds to the first URL it
sees. Each test gets its own file-backed SQLite database, so the shared engine
is disposed before and after every test, and the environment variables the
services read are cleared to keep runs hermetic.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

# Make the workspace packages importable without an install.
_ROOT = Path(__file__).resolve().parents[1]
_PATHS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT]
sys.path[:0] = [str(p) for p in _PATHS if str(p) not in sys.path]

from db.client import reset_engine  # noqa: E402

import personal_finance.logging_setup as logging_setup  # noqa: E402

from tests.helpers.db import SeededLedger, bootstrap_sqlite_db, seed_user_ledger  # noqa: E402

_ENV_VARS = (
    "DATABASE_URL",
    "PERSONAL_FINANCE_LOG_LEVEL",
    "PF_PRICE_CACHE_TTL",
    "PF_PRICE_CURRENCY",
    "PF_COINGECKO_URL",
    "PF_CALENDAR_FETCH_WORKERS",
)


@pytest.fixture(autouse=True)
def _fresh_engine(monkeypatch: pytest.MonkeyPatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_engine()
    _reset_package_logger()
    yield
    reset_engine()
    _reset_package_logger()


def _reset_package_logger() -> None:
    # The CLI configures logging once per process; undo it so caplog sees records.
    pkg = logging.getLogger("personal_finance")
    for h in list(pkg.handlers):
        pkg.removeHandler(h)
    pkg.propagate = True
    pkg.setLevel(logging.NOTSET)
    logging_setup._CONFIGURED = False


@pytest.fixture
def db_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    url = bootstrap_sqlite_db(tmp_path / "pf.db")
    monkeypatch.setenv("DATABASE_URL", url)
    return url


@pytest.fixture
def ledger(db_url: str) -> SeededLedger:
    return seed_user_ledger(database_url=db_url)
