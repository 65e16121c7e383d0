# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import requests

from uma_responder.config import Settings
from uma_responder.exceptions import PriceUnavailableException
from uma_responder.JSONable import JSONable
from uma_responder.multipliers import IPriceSource, MultiplierCalculator

logger = logging.getLogger(__name__)

BTC_USD_SYMBOL = "tBTCUSD"
ETH_USD_SYMBOL = "tETHUSD"
DEFAULT_CACHE_TTL_MS = 30_000

TEST_PRICES: Mapping[str, float] = MappingProxyType(
    {
        BTC_USD_SYMBOL: 100_000,
        ETH_USD_SYMBOL: 3_500,
    }
)


@dataclass(frozen=True)
class PriceQuote(JSONable):
    symbol: str
    bid: float
    bid_size: float
    ask: float
    ask_size: float
    daily_change: float
    daily_change_perc: float
    last_price: float
    volume: float
    high: float
    low: float
    fetched_at_epoch_ms: int
    """
    Time at which the fetch that produced this quote completed.
    """

    @classmethod
    def from_ticker(
        cls, symbol: str, ticker: Sequence[Any], fetched_at_epoch_ms: int
    ) -> "PriceQuote":
        """
        Builds a quote from a ticker array in the order
        [BID, BID_SIZE, ASK, ASK_SIZE, DAILY_CHANGE, DAILY_CHANGE_PERC, LAST_PRICE, VOLUME, HIGH, LOW].

        Raises ValueError if the array is malformed or its last price is not a finite positive number.
        """
        if not isinstance(ticker, (list, tuple)) or len(ticker) < 10:
            raise ValueError(f"Malformed ticker for {symbol}: {ticker!r}")
        values = [float(value) for value in ticker[:10]]
        if not math.isfinite(values[6]) or values[6] <= 0:
            raise ValueError(f"Invalid last price for {symbol}: {ticker[6]!r}")
        return cls(
            symbol=symbol,
            bid=values[0],
            bid_size=values[1],
            ask=values[2],
            ask_size=values[3],
            daily_change=values[4],
            daily_change_perc=values[5],
            last_price=values[6],
            volume=values[7],
            high=values[8],
            low=values[9],
            fetched_at_epoch_ms=fetched_at_epoch_ms,
        )


class ITickerSource(ABC):
    @abstractmethod
    def fetch_ticker(self, symbol: str) -> List[Any]:
        """
        Fetches a single ticker array for the given symbol.
        """

    @abstractmethod
    def fetch_tickers(self, symbols: Sequence[str]) -> List[List[Any]]:
        """
        Fetches several tickers in one call. Each row is the symbol followed by its ticker array.
        """


def _run_http_get(url: str, timeout: float) -> Any:
    session = requests.session()
    try:
        response = session.get(url=url, timeout=timeout)
        response.raise_for_status()
        return response.json()
    finally:
        session.close()


class BitfinexTickerSource(ITickerSource):
    """
    Ticker source backed by the Bitfinex public REST API v2.
    """

    def __init__(self, api_base: str, timeout_seconds: float = 10.0) -> None:
        self._api_base = api_base.rstrip("/")
        self._timeout_seconds = timeout_seconds

    def fetch_ticker(self, symbol: str) -> List[Any]:
        return _run_http_get(f"{self._api_base}/ticker/{symbol}", self._timeout_seconds)

    def fetch_tickers(self, symbols: Sequence[str]) -> List[List[Any]]:
        return _run_http_get(
            f"{self._api_base}/tickers?symbols={','.join(symbols)}",
            self._timeout_seconds,
        )


class FixedPriceTickerSource(ITickerSource):
    """
    Deterministic ticker source serving fixed prices, used in test mode.
    """

    def __init__(self, prices: Mapping[str, float] = TEST_PRICES) -> None:
        self._prices = prices

    def fetch_ticker(self, symbol: str) -> List[Any]:
        price = self._prices.get(symbol)
        if price is None:
            raise PriceUnavailableException(
                f"No test price configured for symbol: {symbol}"
            )
        return [price, 1, price, 1, 0, 0, price, 1000, price, price]

    def fetch_tickers(self, symbols: Sequence[str]) -> List[List[Any]]:
        return [
            [symbol, *self.fetch_ticker(symbol)]
            for symbol in symbols
            if symbol in self._prices
        ]


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateOracle(IPriceSource):
    """
    Caches price quotes per symbol for `cache_ttl_ms`, measured from the completion of the fetch.

    When a refresh fails, the last known quote is served even if stale. When no quote was ever obtained
    for a symbol, the failure is raised as PriceUnavailableException.
    """

    def __init__(
        self,
        ticker_source: ITickerSource,
        clock: Callable[[], int] = _now_ms,
        cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS,
    ) -> None:
        self._ticker_source = ticker_source
        self._clock = clock
        self._cache_ttl_ms = cache_ttl_ms
        self._cache: Dict[str, PriceQuote] = {}
        self._symbol_locks: Dict[str, threading.Lock] = {}
        self._symbol_locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateOracle":
        ticker_source: ITickerSource = (
            FixedPriceTickerSource()
            if settings.test_mode
            else BitfinexTickerSource(
                settings.ticker_api_base, settings.ticker_http_timeout_seconds
            )
        )
        return cls(
            ticker_source=ticker_source,
            cache_ttl_ms=settings.price_cache_ttl_seconds * 1000,
        )

    def _is_fresh(self, quote: Optional[PriceQuote]) -> bool:
        return (
            quote is not None
            and self._clock() - quote.fetched_at_epoch_ms < self._cache_ttl_ms
        )

    def _lock_for(self, symbol: str) -> threading.Lock:
        with self._symbol_locks_guard:
            return self._symbol_locks.setdefault(symbol, threading.Lock())

    def get_cached_price(self, symbol: str) -> Optional[PriceQuote]:
        return self._cache.get(symbol)

    def get_price(self, symbol: str) -> PriceQuote:
        cached = self._cache.get(symbol)
        if self._is_fresh(cached):
            return cached  # type: ignore[return-value]

        with self._lock_for(symbol):
            # Another caller may have refreshed the symbol while we waited.
            cached = self._cache.get(symbol)
            if self._is_fresh(cached):
                return cached  # type: ignore[return-value]
            try:
                ticker = self._ticker_source.fetch_ticker(symbol)
                quote = PriceQuote.from_ticker(symbol, ticker, self._clock())
            except Exception as ex:  # pylint: disable=broad-except
                logger.error("Failed to fetch ticker for %s: %s", symbol, ex)
                if cached is not None:
                    logger.warning(
                        "Using stale price for %s fetched at %d",
                        symbol,
                        cached.fetched_at_epoch_ms,
                    )
                    return cached
                if isinstance(ex, PriceUnavailableException):
                    raise
                raise PriceUnavailableException(
                    f"Unable to fetch price for {symbol}."
                ) from ex
            self._cache[symbol] = quote
            return quote

    def get_prices(self, symbols: Iterable[str]) -> Dict[str, PriceQuote]:
        """
        Fetches several symbols in one call. Rows that cannot be parsed are skipped and the remaining
        quotes are cached and returned; a failure of the call itself raises PriceUnavailableException.
        """
        symbols = list(symbols)
        try:
            rows = self._ticker_source.fetch_tickers(symbols)
        except Exception as ex:  # pylint: disable=broad-except
            logger.error("Failed to fetch tickers %s: %s", ",".join(symbols), ex)
            raise PriceUnavailableException(
                f"Unable to fetch prices for {','.join(symbols)}."
            ) from ex

        fetched_at = self._clock()
        quotes: Dict[str, PriceQuote] = {}
        for row in rows or []:
            try:
                symbol = row[0]
                if not isinstance(symbol, str):
                    raise ValueError(f"Missing symbol in ticker row {row!r}")
                quote = PriceQuote.from_ticker(symbol, row[1:], fetched_at)
            except (TypeError, ValueError, IndexError, KeyError) as ex:
                logger.warning("Skipping malformed ticker row: %s", ex)
                continue
            self._cache[symbol] = quote
            quotes[symbol] = quote
        return quotes

    def get_btc_usd_price(self) -> float:
        return self.get_price(BTC_USD_SYMBOL).last_price

    def get_eth_usd_price(self) -> float:
        return self.get_price(ETH_USD_SYMBOL).last_price

    def get_multipliers(self, asset: str, currencies: Iterable[str]) -> Dict[str, int]:
        return MultiplierCalculator(self).compute_multipliers(asset, currencies)

    def clear_cache(self) -> None:
        self._cache.clear()
