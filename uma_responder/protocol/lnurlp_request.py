# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse

from uma_responder.exceptions import InvalidRequestException
from uma_responder.urls import lnurlp_url


@dataclass
class LnurlpRequest:
    username: str
    """
    The user part of the receiver's UMA address.
    """

    domain: str
    """
    The domain part of the receiver's UMA address, taken from the request host.
    """

    amount_msats: Optional[int] = None
    """
    The amount to pay in millisatoshis. Only set for pay requests.
    """

    nonce: Optional[str] = None
    """
    Caller-supplied token that identifies this payment request. Only set for pay requests.
    """

    currency: Optional[str] = None
    settlement_layer: Optional[str] = None
    asset_identifier: Optional[str] = None

    @property
    def receiver_address(self) -> str:
        return f"{self.username}@{self.domain}"

    def is_pay_request(self) -> bool:
        return self.amount_msats is not None

    def encode_to_url(self) -> str:
        base_url = lnurlp_url(self.domain, self.username)
        if not self.is_pay_request():
            return base_url
        params = {
            "amount": self.amount_msats,
            "nonce": self.nonce,
            "currency": self.currency,
            "settlementLayer": self.settlement_layer,
            "assetIdentifier": self.asset_identifier,
        }
        query = urlencode({key: value for key, value in params.items() if value is not None})
        return f"{base_url}?{query}"


def _first(query: dict, name: str) -> Optional[str]:
    values = query.get(name)
    return values[0] if values and values[0] else None


def parse_lnurlp_request(url: str) -> LnurlpRequest:
    parsed_url = urlparse(url)
    paths = parsed_url.path.split("/")
    if len(paths) != 4 or paths[1] != ".well-known" or paths[2] != "lnurlp" or not paths[3]:
        raise InvalidRequestException("Invalid request path.")
    if not parsed_url.netloc:
        raise InvalidRequestException("Missing host in request URL.")

    query = parse_qs(parsed_url.query, keep_blank_values=True)
    amount = _first(query, "amount")
    nonce = _first(query, "nonce")
    # The pay phase is all or nothing: amount and nonce come together.
    if (amount is None) != (nonce is None):
        raise InvalidRequestException(
            "Missing pay request parameters: amount and nonce are both required."
        )

    amount_msats = None
    if amount is not None:
        try:
            amount_msats = int(amount)
        except ValueError as ex:
            raise InvalidRequestException(f"Invalid amount {amount}.") from ex
        if amount_msats <= 0:
            raise InvalidRequestException(f"Invalid amount {amount}.")

    return LnurlpRequest(
        username=paths[3].lower(),
        domain=parsed_url.netloc.lower(),
        amount_msats=amount_msats,
        nonce=nonce,
        currency=_first(query, "currency"),
        settlement_layer=_first(query, "settlementLayer"),
        asset_identifier=_first(query, "assetIdentifier"),
    )
