# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from dataclasses import dataclass
from typing import Any, Dict

from uma_responder.JSONable import JSONable


@dataclass
class Currency(JSONable):
    code: str
    """
    ISO 4217 currency code (if applicable). For example, USD for US Dollars.
    """

    name: str
    """
    Full display name of the currency. For example, in USD, the name is "US Dollar".
    """

    symbol: str
    """
    Symbol for this currency. For example, in USD, the symbol is "$".
    """

    millisatoshi_per_unit: int
    """
    Millisats per smallest "unit" of this currency (eg. 1 cent in USD).
    """

    min_sendable: int
    """
    Minimum amount that can be sent in this currency, in its smallest unit.
    """

    max_sendable: int
    """
    Maximum amount that can be sent in this currency, in its smallest unit.
    """

    decimals: int
    """
    The number of digits after the decimal point for display on the sender side. For example, in USD,
    by convention, there are 2 digits for cents - $5.95. In this case, `decimals` would be 2.
    """

    @classmethod
    def _get_field_name_overrides(cls) -> Dict[str, str]:
        return {"millisatoshi_per_unit": "multiplier"}

    def to_dict(self) -> Dict[str, Any]:
        # The max and min sendable fields live in the convertible struct.
        result_dict = super().to_dict()
        result_dict.pop("maxSendable")
        result_dict.pop("minSendable")
        result_dict["convertible"] = {
            "max": self.max_sendable,
            "min": self.min_sendable,
        }
        return result_dict

    @classmethod
    def _from_dict(cls, json_dict: Dict[str, Any]) -> Dict[str, Any]:
        data = super()._from_dict(json_dict)
        convertible = json_dict["convertible"]
        data["max_sendable"] = convertible["max"]
        data["min_sendable"] = convertible["min"]
        return data
