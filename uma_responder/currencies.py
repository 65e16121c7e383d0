# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping


@dataclass(frozen=True)
class CurrencyMetadata:
    code: str
    name: str
    symbol: str
    decimals: int
    default_min_sendable: int
    default_max_sendable: int


@dataclass
class CurrencySettings:
    """
    Per-domain settings for one currency code. Limits are expressed in millisatoshis, the unit of the
    lookup response's `minSendable` and `maxSendable`.
    """

    active: bool
    min_sendable: int
    max_sendable: int

    def accepts(self, amount_msats: int) -> bool:
        return self.active and self.min_sendable <= amount_msats <= self.max_sendable


CURRENCIES: Mapping[str, CurrencyMetadata] = MappingProxyType(
    {
        "USD": CurrencyMetadata(
            code="USD",
            name="US Dollar",
            symbol="$",
            decimals=2,
            default_min_sendable=1,
            default_max_sendable=100_000,
        ),
        "BTC": CurrencyMetadata(
            code="BTC",
            name="Bitcoin",
            symbol="₿",
            decimals=8,
            default_min_sendable=1_000,
            default_max_sendable=100_000_000,
        ),
        "USDT": CurrencyMetadata(
            code="USDT",
            name="Tether USD",
            symbol="₮",
            decimals=6,
            default_min_sendable=1,
            default_max_sendable=100_000,
        ),
    }
)

FIAT_CURRENCY_CODES = frozenset({"USD"})

VALID_DOMAIN_CURRENCIES = (
    "BTC",
    "USDT_POLYGON",
    "USDT_SOLANA",
    "USDT_TRON",
    "USDT_ETH",
    "USD",
)


def default_currency_settings() -> Dict[str, CurrencySettings]:
    # Every domain currency starts out with the BTC limits.
    btc = CURRENCIES["BTC"]
    return {
        code: CurrencySettings(
            active=True,
            min_sendable=btc.default_min_sendable,
            max_sendable=btc.default_max_sendable,
        )
        for code in VALID_DOMAIN_CURRENCIES
    }
