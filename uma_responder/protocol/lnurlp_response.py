# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from dataclasses import dataclass
from typing import Dict, List, Optional

from uma_responder.JSONable import JSONable
from uma_responder.protocol.currency import Currency
from uma_responder.protocol.settlement import SettlementOption


@dataclass
class LnurlpResponse(JSONable):
    callback: str
    """
    The URL that the sender will call for the pay request.
    """

    min_sendable: int
    """
    The minimum amount that the sender can send in millisatoshis.
    """

    max_sendable: int
    """
    The maximum amount that the sender can send in millisatoshis.
    """

    encoded_metadata: str
    """
    JSON-encoded metadata that the sender can use to display information to the user.
    """

    uma_version: str
    """
    The version of the UMA protocol that the receiver is using.
    """

    settlement_options: List[SettlementOption]
    """
    The settlement layers and assets the receiver accepts, with their multipliers.
    """

    currencies: Optional[List[Currency]] = None
    """
    The list of currencies that the receiver accepts over Lightning, in order of preference.
    """

    tag: str = "payRequest"

    @classmethod
    def _get_field_name_overrides(cls) -> Dict[str, str]:
        return {"encoded_metadata": "metadata"}

    def settlement_layers(self) -> List[str]:
        return [option.settlement_layer for option in self.settlement_options]

    def get_settlement_option(self, layer: str) -> Optional[SettlementOption]:
        return next(
            (o for o in self.settlement_options if o.settlement_layer == layer), None
        )
