# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

import os
from typing import Optional

from pydantic import BaseModel, field_validator

DEFAULT_TICKER_API_BASE = "https://api-pub.bitfinex.com/v2"


class Settings(BaseModel):
    test_mode: bool = False
    """
    When set, the rate oracle serves fixed prices from a static table and never touches the network.
    """

    ticker_api_base: str = DEFAULT_TICKER_API_BASE
    price_cache_ttl_seconds: int = 30
    ticker_http_timeout_seconds: float = 10.0
    payment_request_expiry_seconds: int = 3600

    @field_validator("price_cache_ttl_seconds", "payment_request_expiry_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Must be greater than 0")
        return v

    @field_validator("ticker_api_base")
    @classmethod
    def validate_ticker_api_base(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid ticker API base URL: {v}")
        return v.rstrip("/")


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() == "true"


def get_settings() -> Settings:
    overrides = {
        "test_mode": _env_flag("TEST_MODE"),
        "ticker_api_base": os.environ.get("BITFINEX_API_BASE"),
        "price_cache_ttl_seconds": os.environ.get("PRICE_CACHE_TTL_SECONDS"),
        "ticker_http_timeout_seconds": os.environ.get("TICKER_HTTP_TIMEOUT_SECONDS"),
        "payment_request_expiry_seconds": os.environ.get(
            "PAYMENT_REQUEST_EXPIRY_SECONDS"
        ),
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})
