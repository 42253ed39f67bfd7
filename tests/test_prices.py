from __future__ import annotations

import io
import json
import urllib.error
import urllib.parse
import urllib.request
from decimal import Decimal

import pytest

from personal_finance.errors import UpstreamUnavailableError
from personal_finance.prices import CoinGeckoPriceOracle


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _FakeCoinGecko:
    """Stands in for ``urllib.request.urlopen`` and records requested URLs."""

    def __init__(self, payload: object) -> None:
        self.payload = payload
        self.urls: list[str] = []
        self.timeouts: list[float] = []

    def __call__(self, req, timeout=None):
        self.urls.append(req.full_url)
        self.timeouts.append(timeout)
        body = self.payload if isinstance(self.payload, bytes) else json.dumps(self.payload)
        if isinstance(body, str):
            body = body.encode("utf-8")
        return io.BytesIO(body)

    def query(self, index: int = -1) -> dict[str, list[str]]:
        return urllib.parse.parse_qs(urllib.parse.urlparse(self.urls[index]).query)


_PAYLOAD = {
    "bitcoin": {"eur": 60000.5, "eur_24h_change": -1.25},
    "ethereum": {"eur": 3000, "eur_24h_change": 2.5},
}


@pytest.fixture()
def coingecko(monkeypatch: pytest.MonkeyPatch) -> _FakeCoinGecko:
    fake = _FakeCoinGecko(_PAYLOAD)
    monkeypatch.setattr(urllib.request, "urlopen", fake)
    return fake


def test_quote_is_parsed_as_decimal(coingecko: _FakeCoinGecko) -> None:
    oracle = CoinGeckoPriceOracle(cache_ttl=60)
    quote = oracle.get_price("btc")

    assert quote.price == Decimal("60000.5")
    assert quote.change_24h == Decimal("-1.25")
    assert quote.is_available
    q = coingecko.query()
    assert q["ids"] == ["bitcoin"]
    assert q["vs_currencies"] == ["eur"]
    assert coingecko.timeouts == [10.0]


def test_cache_expires_after_ttl(coingecko: _FakeCoinGecko) -> None:
    clock = _Clock()
    oracle = CoinGeckoPriceOracle(cache_ttl=60, clock=clock)

    oracle.get_price("BTC")
    clock.now += 59
    oracle.get_price("BTC")
    assert len(coingecko.urls) == 1

    clock.now += 1
    oracle.get_price("BTC")
    assert len(coingecko.urls) == 2

    oracle.invalidate("btc")
    oracle.get_price("BTC")
    assert len(coingecko.urls) == 3


def test_batch_quotes_use_one_request(coingecko: _FakeCoinGecko) -> None:
    oracle = CoinGeckoPriceOracle(cache_ttl=60)
    quotes = oracle.get_prices(["ETH", "btc", "DOGE", "BTC"])

    assert set(quotes) == {"BTC", "ETH", "DOGE"}
    assert quotes["ETH"].price == Decimal("3000")
    # Unmapped symbol: no request, no price.
    assert not quotes["DOGE"].is_available
    assert len(coingecko.urls) == 1
    assert coingecko.query()["ids"] == ["bitcoin,ethereum"]


def test_unknown_symbol_makes_no_request(coingecko: _FakeCoinGecko) -> None:
    quote = CoinGeckoPriceOracle().get_price("NOPE")
    assert quote.price == 0
    assert coingecko.urls == []


def test_coin_missing_from_response_is_unavailable(coingecko: _FakeCoinGecko) -> None:
    quote = CoinGeckoPriceOracle().get_price("SOL")
    assert not quote.is_available


def test_currency_and_url_from_env(
    coingecko: _FakeCoinGecko, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PF_PRICE_CURRENCY", "USD")
    monkeypatch.setenv("PF_COINGECKO_URL", "http://prices.test/simple/price")
    coingecko.payload = {"bitcoin": {"usd": 65000}}

    oracle = CoinGeckoPriceOracle()
    assert oracle.get_price("BTC").price == Decimal("65000")
    assert coingecko.urls[0].startswith("http://prices.test/simple/price?")
    assert coingecko.query()["vs_currencies"] == ["usd"]


def test_invalid_ttl_env_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PF_PRICE_CACHE_TTL", "soon")
    assert CoinGeckoPriceOracle().cache_ttl == 900.0


@pytest.mark.parametrize(
    "exc",
    [
        urllib.error.HTTPError("http://x", 429, "Too Many Requests", None, None),
        urllib.error.URLError("connection refused"),
        TimeoutError("timed out"),
    ],
)
def test_transport_failures_raise_and_are_not_cached(
    monkeypatch: pytest.MonkeyPatch, exc: Exception
) -> None:
    calls = []

    def failing(req, timeout=None):
        calls.append(req)
        raise exc

    monkeypatch.setattr(urllib.request, "urlopen", failing)
    oracle = CoinGeckoPriceOracle(cache_ttl=60)
    for _ in range(2):
        with pytest.raises(UpstreamUnavailableError):
            oracle.get_price("BTC")
    assert len(calls) == 2


def test_malformed_json_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(urllib.request, "urlopen", _FakeCoinGecko(b"<html>busy</html>"))
    with pytest.raises(UpstreamUnavailableError, match="malformed"):
        CoinGeckoPriceOracle().get_price("BTC")
