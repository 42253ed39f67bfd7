"""Market price lookup for investment holdings.

``CoinGeckoPriceOracle`` queries the public CoinGecko ``simple/price``
endpoint for crypto symbols it knows how to map (BTC -> ``bitcoin`` etc.).
Quotes are cached in memory per symbol for ``PF_PRICE_CACHE_TTL`` seconds
(default 900).

A quote with ``price == 0`` means "no price available" (unmapped symbol,
coin missing from the response). Network and HTTP failures raise
:class:`UpstreamUnavailableError`; they are never turned into zero quotes
and never cached.
"""

from __future__ import annotations

import json
import os
import threading
import time
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable, Iterable
from decimal import Decimal
from typing import Any, Protocol

from .errors import UpstreamUnavailableError
from .logging_setup import get_logger
from .models import UNAVAILABLE_QUOTE, Quote

COINGECKO_API_URL = "https://api.coingecko.com/api/v3/simple/price"
DEFAULT_CACHE_TTL = 900.0
DEFAULT_TIMEOUT = 10.0

COINGECKO_IDS: dict[str, str] = {
    "BTC": "bitcoin",
    "XRP": "ripple",
    "ETH": "ethereum",
    "ADA": "cardano",
    "MATIC": "matic-network",
    "DOT": "polkadot",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "ATOM": "cosmos",
    "SOL": "solana",
}

_logger = get_logger("personal_finance.prices")


class PriceOracle(Protocol):
    def get_price(self, symbol: str) -> Quote: ...

    def get_prices(self, symbols: Iterable[str]) -> dict[str, Quote]: ...


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _logger.warning("Ignoring invalid %s=%r", name, raw)
        return default


class CoinGeckoPriceOracle:
    """Crypto quotes from CoinGecko with a per-symbol TTL cache."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        currency: str | None = None,
        cache_ttl: float | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url or os.getenv("PF_COINGECKO_URL") or COINGECKO_API_URL
        self.currency = (currency or os.getenv("PF_PRICE_CURRENCY") or "eur").lower()
        if cache_ttl is None:
            cache_ttl = _env_float("PF_PRICE_CACHE_TTL", DEFAULT_CACHE_TTL)
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self._clock = clock
        self._cache: dict[str, tuple[float, Quote]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def coin_id(symbol: str) -> str | None:
        return COINGECKO_IDS.get(symbol.strip().upper())

    def _cached(self, symbol: str) -> Quote | None:
        with self._lock:
            hit = self._cache.get(symbol)
            if hit is None:
                return None
            expires_at, quote = hit
            if self._clock() >= expires_at:
                del self._cache[symbol]
                return None
            return quote

    def _store(self, symbol: str, quote: Quote) -> None:
        with self._lock:
            self._cache[symbol] = (self._clock() + self.cache_ttl, quote)

    def invalidate(self, symbol: str | None = None) -> None:
        with self._lock:
            if symbol is None:
                self._cache.clear()
            else:
                self._cache.pop(symbol.strip().upper(), None)

    def _fetch(self, coin_ids: list[str]) -> dict[str, Any]:
        query = urllib.parse.urlencode(
            {
                "ids": ",".join(coin_ids),
                "vs_currencies": self.currency,
                "include_24hr_change": "true",
            }
        )
        req = urllib.request.Request(f"{self.base_url}?{query}", method="GET")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                body = resp.read()
        except urllib.error.HTTPError as e:
            raise UpstreamUnavailableError(f"CoinGecko API error: {e.code} {e.reason}") from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise UpstreamUnavailableError(f"CoinGecko unreachable: {e}") from e

        try:
            data = json.loads(body.decode("utf-8"), parse_float=Decimal)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise UpstreamUnavailableError("CoinGecko returned malformed JSON") from e
        if not isinstance(data, dict):
            raise UpstreamUnavailableError("CoinGecko returned an unexpected payload")
        return data

    def _quote_from(self, coin_data: Any) -> Quote:
        if not isinstance(coin_data, dict):
            return UNAVAILABLE_QUOTE
        price = coin_data.get(self.currency, 0)
        change = coin_data.get(f"{self.currency}_24h_change", 0)
        return Quote(price=Decimal(str(price)), change_24h=Decimal(str(change or 0)))

    def get_prices(self, symbols: Iterable[str]) -> dict[str, Quote]:
        """Quote several symbols with at most one HTTP request."""

        wanted = sorted({s.strip().upper() for s in symbols if s and s.strip()})
        out: dict[str, Quote] = {}
        missing: dict[str, str] = {}
        for symbol in wanted:
            cached = self._cached(symbol)
            if cached is not None:
                out[symbol] = cached
                continue
            coin = self.coin_id(symbol)
            if coin is None:
                out[symbol] = UNAVAILABLE_QUOTE
            else:
                missing[symbol] = coin

        if missing:
            data = self._fetch(sorted(set(missing.values())))
            for symbol, coin in missing.items():
                quote = self._quote_from(data.get(coin))
                self._store(symbol, quote)
                out[symbol] = quote
                if not quote.is_available:
                    _logger.warning("No %s price returned for %s", self.currency, symbol)
        return out

    def get_price(self, symbol: str) -> Quote:
        key = symbol.strip().upper()
        return self.get_prices([key]).get(key, UNAVAILABLE_QUOTE)


__all__ = [
    "COINGECKO_API_URL",
    "COINGECKO_IDS",
    "PriceOracle",
    "CoinGeckoPriceOracle",
]
