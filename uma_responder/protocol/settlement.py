# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from dataclasses import dataclass

from uma_responder.JSONable import JSONable


@dataclass
class SettlementInfo(JSONable):
    layer: str
    """
    The settlement layer chosen by the sender (e.g., "ln", "polygon").
    """

    asset_identifier: str
    """
    The identifier of the settlement asset chosen by the sender (e.g., "BTC_LN", "USDT_POLYGON").
    """

    @classmethod
    def _get_field_name_overrides(cls) -> dict[str, str]:
        return {
            "asset_identifier": "assetIdentifier",
        }


@dataclass
class SettlementAsset(JSONable):
    identifier: str
    """
    The identifier of the asset. For Lightning, this is "BTC_LN".
    """

    multipliers: dict[str, int]
    """
    Conversion rates from this asset to the currencies supported by the receiver. The key is the
    currency code and the value is how many of the smallest unit of this asset equal one smallest
    unit of the currency (eg. millisats per cent). Always positive integers.
    """


@dataclass
class SettlementOption(JSONable):
    settlement_layer: str
    """
    The name of the settlement layer (e.g., "spark", "ln", "polygon").
    """

    assets: list[SettlementAsset]
    """
    List of accepted assets on this settlement layer with their conversion rates.
    """

    @classmethod
    def _get_field_name_overrides(cls) -> dict[str, str]:
        return {
            "settlement_layer": "settlementLayer",
        }
