# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

import json
from typing import Any, Dict

from uma_responder.errors import ErrorCode


class UmaException(Exception):
    is_retryable = False

    def __init__(self, reason: str, error_code: ErrorCode) -> None:
        super().__init__(reason)
        self.reason = reason
        self.code = error_code.value.code
        self.http_status_code = error_code.value.http_status_code
        self.error_code = error_code

    def get_additional_params(self) -> dict:
        """Override this method in child classes to add additional parameters to the JSON output"""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "ERROR",
            "reason": self.reason,
            "code": self.code,
            **self.get_additional_params(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls: type["UmaException"], json_str: str) -> "UmaException":
        try:
            data = json.loads(json_str)
            error_code = ErrorCode[data["code"]]
            return UmaException(data["reason"], error_code)
        except (json.JSONDecodeError, KeyError, TypeError):
            return UmaException(
                f"Failed to parse error JSON: {json_str}", ErrorCode.INTERNAL_ERROR
            )

    def to_http_status_code(self) -> int:
        return self.http_status_code

    def __reduce__(self):
        return (_restore_exception, (self.__class__, self.__dict__.copy()))


def _restore_exception(cls: type, state: Dict[str, Any]) -> UmaException:
    exc = cls.__new__(cls)
    UmaException.__init__(exc, state["reason"], state["error_code"])
    exc.__dict__.update(state)
    return exc


class InvalidRequestException(UmaException):
    def __init__(
        self,
        reason: str = "Invalid request",
        error_code: ErrorCode = ErrorCode.INVALID_REQUEST_FORMAT,
    ):
        super().__init__(reason, error_code)


class InvalidCurrencyException(UmaException):
    def __init__(self, reason: str = "Invalid currency"):
        super().__init__(reason, ErrorCode.INVALID_CURRENCY)


class AmountOutOfRangeException(UmaException):
    def __init__(self, reason: str = "Amount out of range"):
        super().__init__(reason, ErrorCode.AMOUNT_OUT_OF_RANGE)


class UserNotFoundException(UmaException):
    def __init__(self, reason: str = "User not found"):
        super().__init__(reason, ErrorCode.USER_NOT_FOUND)


class AddressNotFoundException(UmaException):
    def __init__(self, settlement_layer: str) -> None:
        super().__init__(
            f"Address not found for settlement layer {settlement_layer}",
            ErrorCode.SETTLEMENT_LAYER_NOT_SUPPORTED,
        )
        self.settlement_layer = settlement_layer

    def get_additional_params(self) -> dict:
        return {"settlementLayer": self.settlement_layer}


class MissingSigningKeyException(UmaException):
    def __init__(
        self,
        reason: str = "Lightning payments require a Spark public key (signing key) for invoice issuance",
    ):
        super().__init__(reason, ErrorCode.MISSING_SIGNING_KEY)


class DuplicateNonceException(UmaException):
    def __init__(self, nonce: str) -> None:
        super().__init__("DUPLICATE_NONCE", ErrorCode.DUPLICATE_NONCE)
        self.nonce = nonce


class PriceUnavailableException(UmaException):
    is_retryable = True

    def __init__(self, reason: str = "Price feed unavailable"):
        super().__init__(reason, ErrorCode.PRICE_FEED_UNAVAILABLE)


class InvoiceCreationException(UmaException):
    def __init__(self, reason: str = "Failed to create Lightning invoice"):
        super().__init__(reason, ErrorCode.INVOICE_CREATION_FAILED)
