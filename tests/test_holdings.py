from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from db.client import session_scope
from db.models.finance import PfHolding

from personal_finance.errors import ValidationError
from personal_finance.holdings import (
    apply_trade,
    find_holdings,
    pnl_percentage,
    refresh_holding_price,
    set_manual_price,
    update_all_holdings,
)
from personal_finance.models import UNAVAILABLE_QUOTE, Quote
from tests.helpers.db import SeededLedger, seed_user_ledger

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=UTC)


class FakeOracle:
    def __init__(self, prices: dict[str, str]) -> None:
        self.prices = {k: Quote(price=Decimal(v)) for k, v in prices.items()}
        self.batches: list[list[str]] = []

    def get_price(self, symbol: str) -> Quote:
        return self.prices.get(symbol.upper(), UNAVAILABLE_QUOTE)

    def get_prices(self, symbols: Iterable[str]) -> dict[str, Quote]:
        wanted = [s.upper() for s in symbols]
        self.batches.append(wanted)
        return {s: self.get_price(s) for s in wanted}


def _holding(**overrides) -> PfHolding:
    fields = {
        "account_id": 1,
        "asset_type": "crypto",
        "symbol": "BTC",
        "name": "Bitcoin",
        "quantity": Decimal("0"),
        "total_invested": Decimal("0"),
    } | overrides
    return PfHolding(**fields)


def test_buys_and_sells_track_cost_basis() -> None:
    h = _holding()
    apply_trade(h, Decimal("2"), Decimal("100"), "buy", now=NOW)
    apply_trade(h, Decimal("2"), Decimal("200"), "buy", now=NOW)
    assert h.quantity == Decimal("4")
    assert h.total_invested == Decimal("600.00")
    assert h.average_cost == Decimal("150")

    apply_trade(h, Decimal("1"), Decimal("500"), "sell", now=NOW)
    assert h.quantity == Decimal("3")
    assert h.total_invested == Decimal("450.00")
    assert h.average_cost == Decimal("150")

    set_manual_price(h, Decimal("180"), now=NOW)
    assert h.market_value == Decimal("540.00")
    assert h.unrealized_pnl == Decimal("90.00")
    assert h.last_price_update == NOW
    assert pnl_percentage(h) == Decimal("20.00")


@pytest.mark.parametrize(
    "qty, price, side",
    [
        (Decimal("0"), Decimal("1"), "buy"),
        (Decimal("-1"), Decimal("1"), "buy"),
        (Decimal("1"), Decimal("-1"), "buy"),
        (Decimal("5"), Decimal("1"), "sell"),
        (Decimal("1"), Decimal("1"), "short"),
    ],
)
def test_invalid_trades_are_rejected(qty: Decimal, price: Decimal, side: str) -> None:
    h = _holding(quantity=Decimal("1"), total_invested=Decimal("10"), average_cost=Decimal("10"))
    with pytest.raises(ValidationError):
        apply_trade(h, qty, price, side)  # type: ignore[arg-type]
    assert h.quantity == Decimal("1")


def test_manual_price_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        set_manual_price(_holding(), Decimal("0"))


def test_refresh_keeps_old_price_when_unavailable() -> None:
    h = _holding(
        quantity=Decimal("1"), total_invested=Decimal("100"), current_price=Decimal("120")
    )
    assert not refresh_holding_price(h, FakeOracle({}), now=NOW)
    assert h.current_price == Decimal("120")

    assert refresh_holding_price(h, FakeOracle({"BTC": "130"}), now=NOW)
    assert h.current_price == Decimal("130")
    assert h.unrealized_pnl == Decimal("30.00")


def test_pnl_percentage_without_investment_is_zero() -> None:
    assert pnl_percentage(_holding()) == Decimal("0.00")


def test_update_all_holdings_refreshes_crypto_in_one_batch(
    db_url: str, ledger: SeededLedger
) -> None:
    other = seed_user_ledger(database_url=db_url, email="bo@example.com")
    with session_scope(database_url=db_url) as s:
        s.add_all(
            [
                _holding(
                    account_id=ledger.account_id,
                    quantity=Decimal("0.5"),
                    total_invested=Decimal("20000.00"),
                ),
                _holding(
                    account_id=ledger.account_id,
                    symbol="XRP",
                    name="Ripple",
                    quantity=Decimal("100"),
                    current_price=Decimal("0.40"),
                ),
                _holding(
                    account_id=ledger.account_id,
                    asset_type="stock",
                    symbol="AAPL",
                    name="Apple",
                    quantity=Decimal("3"),
                    current_price=Decimal("150"),
                ),
                _holding(account_id=other.account_id, symbol="ETH", name="Ether"),
            ]
        )

    oracle = FakeOracle({"BTC": "60000", "ETH": "3000", "AAPL": "999"})
    with session_scope(database_url=db_url) as s:
        assert update_all_holdings(s, oracle, user_id=ledger.user_id, now=NOW) == 1

    assert oracle.batches == [["BTC", "XRP"]]
    with session_scope(database_url=db_url) as s:
        by_symbol = {h.symbol: h for h in find_holdings(s, user_id=ledger.user_id)}
        assert set(by_symbol) == {"BTC", "XRP", "AAPL"}
        assert by_symbol["BTC"].market_value == Decimal("30000.00")
        assert by_symbol["BTC"].unrealized_pnl == Decimal("10000.00")
        assert by_symbol["XRP"].current_price == Decimal("0.40")
        assert by_symbol["AAPL"].current_price == Decimal("150")


def test_update_all_holdings_with_nothing_to_do(db_url: str, ledger: SeededLedger) -> None:
    oracle = FakeOracle({})
    with session_scope(database_url=db_url) as s:
        assert update_all_holdings(s, oracle) == 0
    assert oracle.batches == []
