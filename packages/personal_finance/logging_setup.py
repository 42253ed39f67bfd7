"""Logging for the ``personal_finance`` services and batch jobs.

Every service module logs through ``get_logger("personal_finance.<module>")``
(skipped recurring templates, one line per due-item conversion or failure).
None of them decides where that output goes.

Output is decided by whoever runs the code:

- The ``personal-finance`` CLI calls ``configure_logging`` once from its root
  callback. That puts a single ``StreamHandler`` on the ``personal_finance``
  logger, at ``--log-level`` or ``PERSONAL_FINANCE_LOG_LEVEL`` (INFO when
  neither is given), and stops propagation so cron logs see each line once.
- A host that imports the services directly (a scheduler or the test suite)
  either configures the ``personal_finance`` logger itself or gets
  silence: until something is configured the package logger carries only a
  ``NullHandler``, so Python's last-resort handler never prints stray
  warnings to stderr on the host's behalf.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "personal_finance"
_LEVEL_ENV = "PERSONAL_FINANCE_LOG_LEVEL"
_DEFAULT_FMT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if level is None:
        # Env override when no explicit level is passed
        level = os.getenv(_LEVEL_ENV)
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        # Accept numeric strings or standard level names (INFO/DEBUG/etc.).
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    Parameters
    ----------
    level:
        Logging level as ``int`` or level-name string (e.g., ``"DEBUG"``). If
        ``None``, the ``PERSONAL_FINANCE_LOG_LEVEL`` environment variable is
        used when set, otherwise ``logging.INFO``.
    fmt:
        Optional format string; defaults to
        ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Output stream for the single ``StreamHandler`` (``sys.stderr``).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FMT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # Avoid double emission via the root logger.
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return the logger ``name`` (normally ``personal_finance.<module>``).

    Before ``configure_logging`` has run, the package logger gets a
    ``NullHandler`` if it has no handler yet. Records then stay quiet in
    library use instead of reaching ``logging.lastResort``, while any handler
    the host attaches to ``personal_finance`` or the root logger still sees
    them.
    """

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
