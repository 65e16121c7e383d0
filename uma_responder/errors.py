# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from enum import Enum
from dataclasses import dataclass


@dataclass
class ErrorDetails:
    code: str
    http_status_code: int


class ErrorCode(Enum):
    INTERNAL_ERROR = ErrorDetails(code="INTERNAL_ERROR", http_status_code=500)
    """An unexpected error occurred on the server"""

    INVALID_REQUEST_FORMAT = ErrorDetails(
        code="INVALID_REQUEST_FORMAT", http_status_code=400
    )
    """The request format is invalid"""

    INVALID_INPUT = ErrorDetails(code="INVALID_INPUT", http_status_code=400)
    """The provided input is invalid"""

    USER_NOT_FOUND = ErrorDetails(code="USER_NOT_FOUND", http_status_code=404)
    """The user for this UMA was not found"""

    AMOUNT_OUT_OF_RANGE = ErrorDetails(code="AMOUNT_OUT_OF_RANGE", http_status_code=400)
    """The amount provided is not within the min/max range"""

    INVALID_CURRENCY = ErrorDetails(code="INVALID_CURRENCY", http_status_code=400)
    """The currency provided is not valid or supported"""

    DUPLICATE_NONCE = ErrorDetails(code="DUPLICATE_NONCE", http_status_code=409)
    """A payment request with this nonce has already been created"""

    SETTLEMENT_LAYER_NOT_SUPPORTED = ErrorDetails(
        code="SETTLEMENT_LAYER_NOT_SUPPORTED", http_status_code=400
    )
    """The receiver has no address configured for the requested settlement layer or asset"""

    MISSING_SIGNING_KEY = ErrorDetails(code="MISSING_SIGNING_KEY", http_status_code=400)
    """The receiver has no public key configured for issuing Lightning invoices"""

    PRICE_FEED_UNAVAILABLE = ErrorDetails(
        code="PRICE_FEED_UNAVAILABLE", http_status_code=503
    )
    """No exchange rate could be obtained from the price feed"""

    INVOICE_CREATION_FAILED = ErrorDetails(
        code="INVOICE_CREATION_FAILED", http_status_code=502
    )
    """The Lightning invoice could not be created"""
