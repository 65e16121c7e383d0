# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

LIGHTNING_LAYER = "ln"


@dataclass(frozen=True)
class SettlementEntry:
    chain_key: str
    """
    The key under which users register an address, e.g. "polygon" or "lightning".
    """

    layer: str
    """
    The settlement layer advertised in lookup responses, e.g. "polygon" or "ln".
    """

    asset: str
    """
    The symbol of the asset settled on this layer, e.g. "USDT" or "BTC".
    """

    asset_identifier: str
    """
    The identifier of the asset in settlement options, e.g. "USDT_POLYGON".
    """

    chain_id: Optional[int] = None
    """
    The numeric chain id for EVM chains.
    """

    @property
    def is_lightning(self) -> bool:
        return self.layer == LIGHTNING_LAYER


class SettlementCatalog:
    """
    Immutable lookup table from chain key to settlement layer and asset. Unknown keys resolve to None.
    """

    def __init__(self, entries: Iterable[SettlementEntry]) -> None:
        by_chain_key = {}
        by_layer: Dict[str, List[SettlementEntry]] = {}
        for entry in entries:
            if entry.chain_key in by_chain_key:
                raise ValueError(f"Duplicate chain key {entry.chain_key}.")
            by_chain_key[entry.chain_key] = entry
            by_layer.setdefault(entry.layer, []).append(entry)
        self._by_chain_key: Mapping[str, SettlementEntry] = MappingProxyType(
            by_chain_key
        )
        self._by_layer: Mapping[str, Tuple[SettlementEntry, ...]] = MappingProxyType(
            {layer: tuple(layer_entries) for layer, layer_entries in by_layer.items()}
        )

    def resolve(self, chain_key: str) -> Optional[SettlementEntry]:
        return self._by_chain_key.get(chain_key.lower())

    def resolve_layer(self, layer: str) -> Optional[SettlementEntry]:
        entries = self._by_layer.get(layer.lower(), ())
        return entries[0] if entries else None

    def resolve_layer_asset(
        self, layer: str, asset_identifier: Optional[str] = None
    ) -> Tuple[SettlementEntry, ...]:
        """
        Returns the entries on `layer` in catalog order, narrowed to those settling `asset_identifier`
        when given. The asset may be named by its identifier ("USDT_POLYGON") or its symbol ("USDT").
        """
        entries = self._by_layer.get(layer.lower(), ())
        if not asset_identifier:
            return entries
        return tuple(
            entry
            for entry in entries
            if asset_identifier in (entry.asset_identifier, entry.asset)
        )

    def chain_keys(self) -> Iterable[str]:
        return self._by_chain_key.keys()

    def __contains__(self, chain_key: object) -> bool:
        return isinstance(chain_key, str) and self.resolve(chain_key) is not None


DEFAULT_SETTLEMENT_CATALOG = SettlementCatalog(
    [
        SettlementEntry("spark", "spark", "BTC", "BTC_SPARK"),
        SettlementEntry("lightning", LIGHTNING_LAYER, "BTC", "BTC_LN"),
        SettlementEntry("ethereum", "ethereum", "USDT", "USDT_ETH", chain_id=1),
        SettlementEntry("polygon", "polygon", "USDT", "USDT_POLYGON", chain_id=137),
        SettlementEntry("arbitrum", "arbitrum", "USDT", "USDT_ARBITRUM", chain_id=42161),
        SettlementEntry("optimism", "optimism", "USDT", "USDT_OPTIMISM", chain_id=10),
        SettlementEntry("base", "base", "USDT", "USDT_BASE", chain_id=8453),
        SettlementEntry("solana", "solana", "USDT", "USDT_SOLANA"),
        SettlementEntry("plasma", "plasma", "USDT", "USDT_PLASMA"),
    ]
)
