# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

import math
from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable

from uma_responder.exceptions import PriceUnavailableException

MILLISATS_PER_BTC = 100_000_000_000
CENTS_PER_USD = 100
# USDT has 6 decimals, so with a 1:1 peg one cent is 0.01 USDT = 10,000 micro-USDT.
MICRO_USDT_PER_USD_CENT = 10_000


class IPriceSource(ABC):
    @abstractmethod
    def get_btc_usd_price(self) -> float:
        """
        Returns the last traded BTC price in US dollars.
        """


def btc_multiplier_for_usd(btc_price_usd: float) -> int:
    """
    Millisatoshis per US cent at the given BTC price, rounded half up.

    Raises PriceUnavailableException if the price is not a finite positive number or is so large that the
    multiplier would round to zero.
    """
    if (
        isinstance(btc_price_usd, bool)
        or not isinstance(btc_price_usd, (int, float, Decimal))
        or not math.isfinite(btc_price_usd)
        or btc_price_usd <= 0
    ):
        raise PriceUnavailableException(f"Invalid BTC price {btc_price_usd!r}.")
    cents_per_btc = Decimal(str(btc_price_usd)) * CENTS_PER_USD
    multiplier = int(
        (Decimal(MILLISATS_PER_BTC) / cents_per_btc).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
    )
    if multiplier <= 0:
        raise PriceUnavailableException(
            f"BTC price {btc_price_usd!r} is too high to express in millisats per cent."
        )
    return multiplier


class MultiplierCalculator:
    """
    Computes, for a settlement asset, how many of its smallest unit equal one smallest unit of each
    requested currency. Pairs without a conversion rule are left out of the result.
    """

    def __init__(self, price_source: IPriceSource) -> None:
        self._price_source = price_source

    def compute_multipliers(
        self, asset: str, currencies: Iterable[str]
    ) -> Dict[str, int]:
        multipliers: Dict[str, int] = {}
        for currency in currencies:
            if currency != "USD":
                continue
            if asset == "USDT":
                multipliers[currency] = MICRO_USDT_PER_USD_CENT
            elif asset == "BTC":
                multipliers[currency] = btc_multiplier_for_usd(
                    self._price_source.get_btc_usd_price()
                )
        return multipliers
