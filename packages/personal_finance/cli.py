# ruff: noqa: I001
"""CLI for the ``personal_finance`` package.

This module exposes callable command handlers (``cmd_calendar``,
``cmd_process_planned`` ...) and a Typer-based console interface. Environment
variables (notably ``DATABASE_URL``) are loaded from a local ``.env`` using
``python-dotenv`` before delegating to command logic. Business logic lives in
the service modules (``financial_calendar``, ``due_processing``, ``budgets``,
``holdings``).

Every handler returns a process exit code: 0 on success, 1 on failure.
"""

from __future__ import annotations

import sys
from datetime import date, datetime
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from .errors import PersonalFinanceError
from .logging_setup import configure_logging
from .models import CalendarDay, MonthCalendar, ProcessResult

# Failures a command reports as "Error: ..." with exit code 1. RuntimeError
# covers a missing DATABASE_URL.
_COMMAND_ERRORS = (PersonalFinanceError, SQLAlchemyError, RuntimeError)


# ---- Small module-level helpers used by CLI commands -------------------------


def _parse_month(value: str | None) -> date:
    if not value:
        return date.today().replace(day=1)
    return datetime.strptime(value, "%Y-%m").date()


def _parse_day(value: str | None) -> date:
    if not value:
        return date.today()
    return datetime.strptime(value, "%Y-%m-%d").date()


def _fmt(amount) -> str:
    return f"{amount:,.2f}"


def _render_month(console: Console, month: MonthCalendar) -> None:
    table = Table(title=f"{month.name} ({month.key})")
    table.add_column("Date")
    table.add_column("Actual", justify="right")
    table.add_column("Recurring", justify="right")
    table.add_column("Planned", justify="right")
    table.add_column("Net", justify="right")

    for day in month.days.values():
        if not day.has_transactions:
            continue
        table.add_row(
            day.date.isoformat(),
            str(len(day.actual)),
            str(len(day.recurring)),
            str(len(day.planned)),
            _fmt(day.total_impact),
        )
    console.print(table)

    s = month.summary
    summary = Table(title="Summary", show_header=True)
    summary.add_column("")
    summary.add_column("Income", justify="right")
    summary.add_column("Expenses", justify="right")
    summary.add_row("Actual", _fmt(s.actual_income), _fmt(s.actual_expenses))
    summary.add_row("Recurring", _fmt(s.recurring_income), _fmt(s.recurring_expenses))
    summary.add_row("Planned", _fmt(s.planned_income), _fmt(s.planned_expenses))
    summary.add_row("Total", _fmt(s.total_income), _fmt(s.total_expenses))
    console.print(summary)
    console.print(f"Transactions: {s.total_transactions}")
    console.print(f"Net projected: {_fmt(s.net_projected)}")


def _render_day(console: Console, day: CalendarDay) -> None:
    if not day.has_transactions:
        console.print(f"{day.date.isoformat()}: nothing scheduled")
        return
    table = Table(title=day.date.isoformat())
    table.add_column("Source")
    table.add_column("Description")
    table.add_column("Type")
    table.add_column("Amount", justify="right")
    for source, impact in day.entries:
        table.add_row(source, impact.description or "", impact.type, _fmt(impact.signed_impact))
    console.print(table)
    console.print(f"Total impact: {_fmt(day.total_impact)}")


def _report(result: ProcessResult, *, noun: str) -> int:
    if not result.outcomes:
        print(f"No {noun} found that are due for processing.")
        return 0

    print(f"Found {len(result.outcomes)} {noun} due for processing:")
    for o in result.outcomes:
        print(f"- {o.description} ({_fmt(o.amount)}) on {o.day.isoformat()} for user {o.user_id}")
        if o.status == "converted":
            print(f"  Converted to transaction #{o.transaction_id}")
        elif o.status == "would_convert":
            print("  [DRY RUN] Would convert to transaction")
        elif o.status == "skipped":
            print(f"  Skipped: {o.error}")
        else:
            print(f"  Failed to convert: {o.error}", file=sys.stderr)

    if result.dry_run:
        print("\n[DRY RUN] No actual conversions were performed.")
        return 0

    print("\nProcessing completed:")
    print(f"- Successfully processed: {result.processed}")
    if result.skipped:
        print(f"- Skipped: {result.skipped}")
    if result.errors:
        print(f"- Errors: {result.errors}")
    return 0 if result.ok else 1


# ---- Command handlers --------------------------------------------------------


def cmd_calendar(user_id: int, month: str | None = None, *, database_url: str | None = None) -> int:
    """Print the calendar for ``month`` (``YYYY-MM``, default current month)."""

    from .financial_calendar import CalendarAggregator, SqlCalendarSources

    try:
        anchor = _parse_month(month)
    except ValueError:
        print(f"Error: invalid month {month!r}; expected YYYY-MM", file=sys.stderr)
        return 1

    try:
        aggregator = CalendarAggregator(SqlCalendarSources(database_url=database_url))
        result = aggregator.compute_month(user_id, anchor)
    except _COMMAND_ERRORS as e:
        print(f"Error: failed to compute calendar: {e}", file=sys.stderr)
        return 1

    _render_month(Console(), result)
    return 0


def cmd_day(user_id: int, day: str | None = None, *, database_url: str | None = None) -> int:
    from .financial_calendar import CalendarAggregator, SqlCalendarSources

    try:
        target = _parse_day(day)
    except ValueError:
        print(f"Error: invalid date {day!r}; expected YYYY-MM-DD", file=sys.stderr)
        return 1

    try:
        aggregator = CalendarAggregator(SqlCalendarSources(database_url=database_url))
        detail = aggregator.get_day_detail(user_id, target)
    except _COMMAND_ERRORS as e:
        print(f"Error: failed to compute day detail: {e}", file=sys.stderr)
        return 1

    _render_day(Console(), detail)
    return 0


def cmd_process_planned(
    *,
    dry_run: bool = False,
    user_id: int | None = None,
    today: str | None = None,
    database_url: str | None = None,
) -> int:
    """Convert due auto-converting planned transactions (``--dry-run`` to preview)."""

    from .due_processing import process_due_planned

    try:
        as_of = _parse_day(today)
    except ValueError:
        print(f"Error: invalid date {today!r}; expected YYYY-MM-DD", file=sys.stderr)
        return 1

    try:
        result = process_due_planned(
            today=as_of, dry_run=dry_run, user_id=user_id, database_url=database_url
        )
    except _COMMAND_ERRORS as e:
        print(f"Error: planned processing failed: {e}", file=sys.stderr)
        return 1
    return _report(result, noun="planned transaction(s)")


def cmd_process_recurring(
    *,
    dry_run: bool = False,
    user_id: int | None = None,
    today: str | None = None,
    database_url: str | None = None,
) -> int:
    from .due_processing import process_due_recurring

    try:
        as_of = _parse_day(today)
    except ValueError:
        print(f"Error: invalid date {today!r}; expected YYYY-MM-DD", file=sys.stderr)
        return 1

    try:
        result = process_due_recurring(
            today=as_of, dry_run=dry_run, user_id=user_id, database_url=database_url
        )
    except _COMMAND_ERRORS as e:
        print(f"Error: recurring processing failed: {e}", file=sys.stderr)
        return 1
    return _report(result, noun="recurring occurrence(s)")


def cmd_recalculate_budgets(*, user_id: int | None = None, database_url: str | None = None) -> int:
    from db.client import session_scope

    from .budgets import recalculate_budgets

    try:
        with session_scope(database_url=database_url) as session:
            count = recalculate_budgets(session, user_id=user_id)
    except _COMMAND_ERRORS as e:
        print(f"Error: budget recalculation failed: {e}", file=sys.stderr)
        return 1
    print(f"Recalculated {count} budget(s).")
    return 0


def cmd_update_prices(*, user_id: int | None = None, database_url: str | None = None) -> int:
    from db.client import session_scope

    from .holdings import update_all_holdings
    from .prices import CoinGeckoPriceOracle

    try:
        with session_scope(database_url=database_url) as session:
            count = update_all_holdings(session, CoinGeckoPriceOracle(), user_id=user_id)
    except _COMMAND_ERRORS as e:
        print(f"Error: price update failed: {e}", file=sys.stderr)
        return 1
    print(f"Updated prices for {count} holding(s).")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Personal finance tools: month calendar projection and due-transaction "
        "processing. Loads DATABASE_URL from a local .env before running."
    ),
)

DATABASE_URL_HELP = "Override DATABASE_URL (falls back to env var)."


@app.command("calendar")
def calendar_cmd(
    user: int = typer.Option(..., "--user", help="User id."),
    month: str | None = typer.Option(None, help="Month as YYYY-MM (default: current)."),
    database_url: str | None = typer.Option(None, help=DATABASE_URL_HELP),
) -> None:
    """Show a month of actual, recurring and planned transactions."""

    raise typer.Exit(cmd_calendar(user, month, database_url=database_url))


@app.command("day")
def day_cmd(
    user: int = typer.Option(..., "--user", help="User id."),
    day: str | None = typer.Option(None, "--date", help="Day as YYYY-MM-DD (default: today)."),
    database_url: str | None = typer.Option(None, help=DATABASE_URL_HELP),
) -> None:
    """Show everything scheduled on one day."""

    raise typer.Exit(cmd_day(user, day, database_url=database_url))


@app.command("process-planned")
def process_planned_cmd(
    dry_run: bool = typer.Option(
        False, help="Show what would be processed without actually converting."
    ),
    user: int | None = typer.Option(None, "--user", help="Only this user's items."),
    today: str | None = typer.Option(None, help="Process as of YYYY-MM-DD (default: today)."),
    database_url: str | None = typer.Option(None, help=DATABASE_URL_HELP),
) -> None:
    """Convert due planned transactions into actual transactions."""

    raise typer.Exit(
        cmd_process_planned(dry_run=dry_run, user_id=user, today=today, database_url=database_url)
    )


@app.command("process-recurring")
def process_recurring_cmd(
    dry_run: bool = typer.Option(
        False, help="Show what would be processed without writing transactions."
    ),
    user: int | None = typer.Option(None, "--user", help="Only this user's templates."),
    today: str | None = typer.Option(None, help="Process as of YYYY-MM-DD (default: today)."),
    database_url: str | None = typer.Option(None, help=DATABASE_URL_HELP),
) -> None:
    """Materialize due occurrences of recurring transactions."""

    raise typer.Exit(
        cmd_process_recurring(dry_run=dry_run, user_id=user, today=today, database_url=database_url)
    )


@app.command("recalculate-budgets")
def recalculate_budgets_cmd(
    user: int | None = typer.Option(None, "--user", help="Only this user's budgets."),
    database_url: str | None = typer.Option(None, help=DATABASE_URL_HELP),
) -> None:
    """Recompute spent amounts of budgets from the ledger."""

    raise typer.Exit(cmd_recalculate_budgets(user_id=user, database_url=database_url))


@app.command("update-prices")
def update_prices_cmd(
    user: int | None = typer.Option(None, "--user", help="Only this user's holdings."),
    database_url: str | None = typer.Option(None, help=DATABASE_URL_HELP),
) -> None:
    """Refresh crypto holding prices from CoinGecko."""

    raise typer.Exit(cmd_update_prices(user_id=user, database_url=database_url))


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARNING... (default: PERSONAL_FINANCE_LOG_LEVEL)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


def main() -> None:  # pragma: no cover - console script entry
    app()


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m personal_finance.cli`
    main()
