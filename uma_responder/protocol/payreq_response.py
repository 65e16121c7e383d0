# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from uma_responder.JSONable import JSONable
from uma_responder.protocol.settlement import SettlementInfo


@dataclass
class PayReqResponse(JSONable):
    encoded_invoice: str
    """
    The BOLT11 invoice for Lightning settlement, or the receiver's address on a blockchain settlement layer.
    """

    routes: List[str] = field(default_factory=list)
    """
    Always just an empty array for legacy reasons.
    """

    disposable: bool = True
    """
    Whether the wallet should discard `pr` after use. Lightning invoices are single use; blockchain
    addresses are reusable and come back with `disposable: false`. See LUD-11.
    """

    success_action: Optional[Dict[str, str]] = None
    """
    Defines a struct which can be stored and shown to the user on payment success. See LUD-09.
    """

    settlement: Optional[SettlementInfo] = None
    """
    Echo of the settlement layer and asset the sender asked for, if any.
    """

    @classmethod
    def _get_field_name_overrides(cls) -> Dict[str, str]:
        return {"encoded_invoice": "pr"}
