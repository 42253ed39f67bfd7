"""Investment holdings: trades, valuation and price refresh.

Valuation rules::

    market_value   = quantity * current_price          (2 dp)
    unrealized_pnl = market_value - total_invested

A buy adds ``quantity * price`` to ``total_invested`` and recomputes the
average cost. A sell removes ``average_cost * quantity`` from
``total_invested`` (cost basis leaves with the units) and keeps the average
cost unchanged.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Literal

from db.models.finance import PfAccount, PfHolding
from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import ValidationError
from .logging_setup import get_logger
from .models import CENTS, ZERO
from .prices import PriceOracle

_logger = get_logger("personal_finance.holdings")

_QTY = Decimal("0.00000001")


def _dec(raw: object) -> Decimal:
    return ZERO if raw is None else Decimal(str(raw))


def revalue(holding: PfHolding, *, now: datetime | None = None) -> None:
    """Recompute ``market_value`` and ``unrealized_pnl`` from the current price."""

    if holding.current_price is None:
        return
    market_value = (_dec(holding.quantity) * _dec(holding.current_price)).quantize(CENTS)
    holding.market_value = market_value
    holding.unrealized_pnl = market_value - _dec(holding.total_invested).quantize(CENTS)
    holding.last_price_update = now or datetime.now(UTC)


def pnl_percentage(holding: PfHolding) -> Decimal:
    invested = _dec(holding.total_invested)
    if invested <= 0:
        return ZERO
    return (_dec(holding.unrealized_pnl) / invested * 100).quantize(CENTS)


def apply_trade(
    holding: PfHolding,
    quantity: Decimal,
    price: Decimal,
    side: Literal["buy", "sell"],
    *,
    now: datetime | None = None,
) -> PfHolding:
    """Apply a buy or sell to ``holding`` in place."""

    quantity = Decimal(str(quantity))
    price = Decimal(str(price))
    if quantity <= 0:
        raise ValidationError("trade quantity must be positive")
    if price < 0:
        raise ValidationError("trade price must not be negative")

    held = _dec(holding.quantity)
    invested = _dec(holding.total_invested)
    if side == "buy":
        new_qty = held + quantity
        new_invested = invested + quantity * price
        holding.quantity = new_qty.quantize(_QTY)
        holding.total_invested = new_invested.quantize(CENTS)
        holding.average_cost = (new_invested / new_qty).quantize(_QTY) if new_qty > 0 else ZERO
    elif side == "sell":
        if quantity > held:
            raise ValidationError(
                f"cannot sell {quantity} {holding.symbol}: only {held} held"
            )
        basis = _dec(holding.average_cost) * quantity
        holding.quantity = (held - quantity).quantize(_QTY)
        holding.total_invested = (invested - basis).quantize(CENTS)
    else:
        raise ValidationError(f"unknown trade side: {side!r}")

    revalue(holding, now=now)
    return holding


def set_manual_price(
    holding: PfHolding, price: Decimal, *, now: datetime | None = None
) -> PfHolding:
    price = Decimal(str(price))
    if price <= 0:
        raise ValidationError("manual price must be positive")
    holding.current_price = price
    revalue(holding, now=now)
    _logger.info("Manual price set for %s: %s", holding.symbol, price)
    return holding


def refresh_holding_price(
    holding: PfHolding, oracle: PriceOracle, *, now: datetime | None = None
) -> bool:
    """Pull a fresh quote; returns False and keeps the old price when none is available."""

    quote = oracle.get_price(holding.symbol)
    if not quote.is_available:
        _logger.warning("No price available for %s; keeping the previous one", holding.symbol)
        return False
    holding.current_price = quote.price
    revalue(holding, now=now)
    return True


def find_holdings(
    session: Session,
    *,
    user_id: int | None = None,
    asset_type: str | None = None,
) -> list[PfHolding]:
    stmt = select(PfHolding).order_by(PfHolding.id)
    if user_id is not None:
        stmt = stmt.join(PfAccount, PfAccount.id == PfHolding.account_id).where(
            PfAccount.user_id == user_id
        )
    if asset_type is not None:
        stmt = stmt.where(PfHolding.asset_type == asset_type)
    return list(session.execute(stmt).scalars())


def update_all_holdings(
    session: Session,
    oracle: PriceOracle,
    *,
    user_id: int | None = None,
    now: datetime | None = None,
) -> int:
    """Refresh every crypto holding from ``oracle`` in one batch; return how many changed.

    Holdings of other asset types keep their manually set prices.
    """

    holdings = find_holdings(session, user_id=user_id, asset_type="crypto")
    if not holdings:
        return 0

    quotes = oracle.get_prices(h.symbol for h in holdings)
    stamp = now or datetime.now(UTC)
    updated = 0
    for holding in holdings:
        quote = quotes.get(holding.symbol.strip().upper())
        if quote is None or not quote.is_available:
            continue
        holding.current_price = quote.price
        revalue(holding, now=stamp)
        updated += 1
    session.flush()
    _logger.info("Updated prices for %d of %d crypto holding(s)", updated, len(holdings))
    return updated


__all__ = [
    "revalue",
    "pnl_percentage",
    "apply_trade",
    "set_manual_price",
    "refresh_holding_price",
    "find_holdings",
    "update_all_holdings",
]
