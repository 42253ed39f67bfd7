from __future__ import annotations

import io
import logging

import pytest

from personal_finance.logging_setup import configure_logging, get_logger


def test_configure_once_with_explicit_level() -> None:
    stream = io.StringIO()
    configure_logging("debug", fmt="%(name)s|%(levelname)s|%(message)s", stream=stream)
    # Second call is a no-op.
    configure_logging("ERROR", stream=io.StringIO())

    get_logger("personal_finance.test").debug("converted %d", 3)
    assert stream.getvalue() == "personal_finance.test|DEBUG|converted 3\n"
    assert len(logging.getLogger("personal_finance").handlers) == 1


def test_level_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERSONAL_FINANCE_LOG_LEVEL", "warning")
    stream = io.StringIO()
    configure_logging(stream=stream, fmt="%(message)s")

    log = get_logger("personal_finance.test")
    log.info("hidden")
    log.warning("shown")
    assert stream.getvalue() == "shown\n"


def test_unknown_level_defaults_to_info() -> None:
    stream = io.StringIO()
    configure_logging("chatty", stream=stream, fmt="%(message)s")
    log = get_logger("personal_finance.test")
    log.debug("hidden")
    log.info("shown")
    assert stream.getvalue() == "shown\n"


def test_library_use_gets_only_a_null_handler() -> None:
    pkg = logging.getLogger("personal_finance")
    assert pkg.handlers == []

    log = get_logger("personal_finance.calendar")
    assert log.name == "personal_finance.calendar"
    assert [type(h) for h in pkg.handlers] == [logging.NullHandler]

    # Repeated lookups do not stack handlers.
    get_logger("personal_finance.prices")
    assert len(pkg.handlers) == 1
