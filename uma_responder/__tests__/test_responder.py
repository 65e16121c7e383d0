# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

import logging
from datetime import timedelta
from typing import List, Optional, Tuple

import pytest
import requests
from coincurve import PrivateKey

from uma_responder.config import Settings
from uma_responder.exceptions import (
    AddressNotFoundException,
    AmountOutOfRangeException,
    DuplicateNonceException,
    InvalidCurrencyException,
    InvoiceCreationException,
    MissingSigningKeyException,
    PriceUnavailableException,
)
from uma_responder.invoice_creator import ILightningInvoiceCreator
from uma_responder.market_rates import FixedPriceTickerSource, RateOracle
from uma_responder.payment_requests import (
    InMemoryPaymentRequestStore,
    PaymentRequestStatus,
)
from uma_responder.registry import ChainAddressRecord, Domain, InMemoryUserRegistry
from uma_responder.responder import UmaResponder
from uma_responder.settlement_catalog import SettlementCatalog, SettlementEntry
from uma_responder.urls import decode_lnurl

TEST_INVOICE = "lnbc100n1pjtest"


class FakeInvoiceCreator(ILightningInvoiceCreator):
    def __init__(self, invoice: str = TEST_INVOICE, error: Optional[Exception] = None) -> None:
        self.invoice = invoice
        self.error = error
        self.calls: List[Tuple[int, str, str]] = []

    def create_lightning_invoice(
        self, amount_msats: int, description: str, spark_public_key: str
    ) -> str:
        self.calls.append((amount_msats, description, spark_public_key))
        if self.error is not None:
            raise self.error
        return self.invoice


class Fixture:
    def __init__(self, invoice_creator: Optional[FakeInvoiceCreator] = None) -> None:
        self.registry = InMemoryUserRegistry()
        self.domain = self.registry.add_domain("example.com")
        self.store = InMemoryPaymentRequestStore()
        self.invoice_creator = invoice_creator or FakeInvoiceCreator()
        self.responder = UmaResponder(
            registry=self.registry,
            payment_requests=self.store,
            price_source=RateOracle(FixedPriceTickerSource()),
            invoice_creator=self.invoice_creator,
        )


@pytest.fixture
def fixture() -> Fixture:
    return Fixture()


def _spark_public_key() -> str:
    return PrivateKey().public_key.format().hex()


def test_lookup_unknown_user(fixture: Fixture) -> None:
    assert fixture.responder.generate_lookup_response("nobody", fixture.domain) is None


def test_lookup_response(fixture: Fixture) -> None:
    fixture.registry.add_user(
        "alice",
        fixture.domain.id,
        addresses={"lightning": "alice@wallet.example", "polygon": "0xABC"},
    )

    response = fixture.responder.generate_lookup_response("alice", fixture.domain)
    assert response is not None
    assert response.settlement_layers() == ["ln", "polygon"]

    json_output = response.to_dict()
    assert json_output["tag"] == "payRequest"
    assert json_output["callback"] == "https://example.com/.well-known/lnurlp/alice"
    assert json_output["minSendable"] == 1_000
    assert json_output["maxSendable"] == 100_000_000
    assert json_output["umaVersion"] == "1.0"
    assert json_output["metadata"] == (
        '[["text/plain", "Pay to example.com user alice"], '
        '["text/identifier", "alice@example.com"]]'
    )
    assert json_output["settlementOptions"] == [
        {
            "settlementLayer": "ln",
            "assets": [{"identifier": "BTC_LN", "multipliers": {"USD": 10_000}}],
        },
        {
            "settlementLayer": "polygon",
            "assets": [{"identifier": "USDT_POLYGON", "multipliers": {"USD": 10_000}}],
        },
    ]
    assert json_output["currencies"] == [
        {
            "code": "USD",
            "name": "US Dollar",
            "symbol": "$",
            "multiplier": 10_000,
            "decimals": 2,
            "convertible": {"min": 1, "max": 100_000},
        }
    ]


def test_lookup_without_btc_layer_omits_currencies(fixture: Fixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})

    response = fixture.responder.generate_lookup_response("alice", fixture.domain)
    assert response is not None
    assert response.currencies is None
    assert "currencies" not in response.to_dict()


def test_lookup_user_without_addresses(fixture: Fixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id)

    response = fixture.responder.generate_lookup_response("alice", fixture.domain)
    assert response is not None
    assert response.settlement_options == []


def test_usdt_multipliers_identical_across_chains(fixture: Fixture) -> None:
    options = fixture.responder.build_settlement_options(
        [
            ChainAddressRecord("ethereum", "0x1"),
            ChainAddressRecord("polygon", "0x2"),
            ChainAddressRecord("solana", "So3"),
            ChainAddressRecord("base", "0x4"),
        ]
    )

    assert [o.settlement_layer for o in options] == ["ethereum", "polygon", "solana", "base"]
    assert all(o.assets[0].multipliers == {"USD": 10_000} for o in options)


def test_unknown_chains_are_skipped(fixture: Fixture) -> None:
    options = fixture.responder.build_settlement_options(
        [ChainAddressRecord("dogecoin", "D1"), ChainAddressRecord("polygon", "0x2")]
    )
    assert [o.settlement_layer for o in options] == ["polygon"]
    assert options[0].assets[0].identifier == "USDT_POLYGON"


def test_first_address_wins_per_layer_and_asset() -> None:
    catalog = SettlementCatalog(
        [
            SettlementEntry("polygon", "polygon", "USDT", "USDT_POLYGON"),
            SettlementEntry("polygon-usdc", "polygon", "USDC", "USDC_POLYGON"),
            SettlementEntry("polygon-legacy", "polygon", "USDT", "USDT_POLYGON"),
        ]
    )
    responder = UmaResponder(
        registry=InMemoryUserRegistry(catalog),
        payment_requests=InMemoryPaymentRequestStore(),
        price_source=RateOracle(FixedPriceTickerSource()),
        catalog=catalog,
    )

    options = responder.build_settlement_options(
        [
            ChainAddressRecord("polygon", "0x1"),
            ChainAddressRecord("polygon-usdc", "0x2"),
            ChainAddressRecord("polygon-legacy", "0x3"),
        ]
    )

    assert len(options) == 1
    assert [a.identifier for a in options[0].assets] == ["USDT_POLYGON", "USDC_POLYGON"]
    assert options[0].assets[1].multipliers == {}


def test_lookup_fails_without_price(fixture: Fixture) -> None:
    class FailingTickerSource(FixedPriceTickerSource):
        def fetch_ticker(self, symbol: str) -> list:
            raise requests.exceptions.ConnectionError("network down")

    responder = UmaResponder(
        registry=fixture.registry,
        payment_requests=fixture.store,
        price_source=RateOracle(FailingTickerSource()),
    )
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"lightning": "a@b.c"})

    with pytest.raises(PriceUnavailableException):
        responder.generate_lookup_response("alice", fixture.domain)


def test_pay_to_polygon_address(fixture: Fixture) -> None:
    user = fixture.registry.add_user(
        "alice", fixture.domain.id, addresses={"polygon": "0xABC123"}
    )

    response = fixture.responder.generate_pay_response(
        "alice",
        fixture.domain,
        amount_msats=10_000,
        nonce="n1",
        settlement_layer="polygon",
        asset_identifier="USDT_POLYGON",
    )

    assert response.encoded_invoice == "0xABC123"
    assert not response.disposable
    json_output = response.to_dict()
    assert json_output["pr"] == "0xABC123"
    assert json_output["disposable"] is False
    assert json_output["routes"] == []
    assert json_output["settlement"] == {
        "layer": "polygon",
        "assetIdentifier": "USDT_POLYGON",
    }
    assert json_output["successAction"] == {
        "tag": "message",
        "message": "Payment to alice@example.com received!",
    }

    record = fixture.store.get_by_nonce("n1")
    assert record is not None
    assert record.user_id == user.id
    assert record.status == PaymentRequestStatus.ISSUED
    assert record.invoice_or_address == "0xABC123"
    assert record.asset_identifier == "USDT_POLYGON"


def test_pay_duplicate_nonce(fixture: Fixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})
    fixture.responder.generate_pay_response(
        "alice", fixture.domain, 10_000, "n1", settlement_layer="polygon"
    )

    with pytest.raises(DuplicateNonceException) as exc_info:
        fixture.responder.generate_pay_response(
            "alice", fixture.domain, 10_000, "n1", settlement_layer="polygon"
        )
    assert exc_info.value.reason == "DUPLICATE_NONCE"


def test_nonce_is_consumed_by_failed_request(fixture: Fixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})

    with pytest.raises(AddressNotFoundException):
        fixture.responder.generate_pay_response(
            "alice", fixture.domain, 10_000, "n1", settlement_layer="solana"
        )
    record = fixture.store.get_by_nonce("n1")
    assert record is not None
    assert record.status == PaymentRequestStatus.FAILED

    with pytest.raises(DuplicateNonceException):
        fixture.responder.generate_pay_response(
            "alice", fixture.domain, 10_000, "n1", settlement_layer="polygon"
        )


def test_pay_unsupported_layer(fixture: Fixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})

    with pytest.raises(AddressNotFoundException) as exc_info:
        fixture.responder.generate_pay_response(
            "alice", fixture.domain, 10_000, "n1", settlement_layer="unsupported"
        )
    assert str(exc_info.value) == "Address not found for settlement layer unsupported"


def test_pay_mismatched_asset(fixture: Fixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})

    with pytest.raises(AddressNotFoundException):
        fixture.responder.generate_pay_response(
            "alice",
            fixture.domain,
            10_000,
            "n1",
            settlement_layer="polygon",
            asset_identifier="USDT_SOLANA",
        )


def test_pay_lightning_without_spark_key(fixture: Fixture) -> None:
    fixture.registry.add_user(
        "alice", fixture.domain.id, addresses={"lightning": "alice@wallet.example"}
    )

    with pytest.raises(MissingSigningKeyException) as exc_info:
        fixture.responder.generate_pay_response("alice", fixture.domain, 10_000, "n1")
    assert "Lightning payments require a Spark public key" in exc_info.value.reason
    assert fixture.invoice_creator.calls == []


def test_pay_lightning_invoice(fixture: Fixture) -> None:
    spark_public_key = _spark_public_key()
    fixture.registry.add_user(
        "alice", fixture.domain.id, spark_public_key=spark_public_key
    )

    response = fixture.responder.generate_pay_response(
        "alice", fixture.domain, 10_000, "n1"
    )

    assert response.encoded_invoice == TEST_INVOICE
    assert response.disposable
    assert response.settlement is None
    ((amount, description, key),) = fixture.invoice_creator.calls
    assert amount == 10_000
    assert "alice@example.com" in description
    assert key == spark_public_key


def test_pay_lightning_explicit_layer_echoes_settlement(fixture: Fixture) -> None:
    fixture.registry.add_user(
        "alice", fixture.domain.id, spark_public_key=_spark_public_key()
    )

    response = fixture.responder.generate_pay_response(
        "alice", fixture.domain, 10_000, "n1", settlement_layer="LN"
    )
    assert response.to_dict()["settlement"] == {
        "layer": "ln",
        "assetIdentifier": "BTC_LN",
    }


def test_pay_lightning_invoice_failure() -> None:
    fixture = Fixture(FakeInvoiceCreator(error=RuntimeError("node offline")))
    fixture.registry.add_user(
        "alice", fixture.domain.id, spark_public_key=_spark_public_key()
    )

    with pytest.raises(InvoiceCreationException):
        fixture.responder.generate_pay_response("alice", fixture.domain, 10_000, "n1")
    record = fixture.store.get_by_nonce("n1")
    assert record is not None
    assert record.status == PaymentRequestStatus.FAILED


def test_pay_lightning_empty_invoice() -> None:
    fixture = Fixture(FakeInvoiceCreator(invoice=""))
    fixture.registry.add_user(
        "alice", fixture.domain.id, spark_public_key=_spark_public_key()
    )

    with pytest.raises(InvoiceCreationException):
        fixture.responder.generate_pay_response("alice", fixture.domain, 10_000, "n1")


@pytest.mark.parametrize("amount_msats", [999, 100_000_001])
def test_pay_amount_out_of_range(fixture: Fixture, amount_msats: int) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})

    with pytest.raises(AmountOutOfRangeException):
        fixture.responder.generate_pay_response(
            "alice", fixture.domain, amount_msats, "n1", settlement_layer="polygon"
        )
    record = fixture.store.get_by_nonce("n1")
    assert record is not None
    assert record.status == PaymentRequestStatus.FAILED


def test_pay_invalid_currency(fixture: Fixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})

    with pytest.raises(InvalidCurrencyException):
        fixture.responder.generate_pay_response(
            "alice", fixture.domain, 10_000, "n1", currency="EUR"
        )


def test_handle_lookup_request(fixture: Fixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})

    status, body = fixture.responder.handle_lnurlp_request(
        "https://example.com/.well-known/lnurlp/Alice"
    )
    assert status == 200
    assert body["tag"] == "payRequest"
    assert body["settlementOptions"][0]["settlementLayer"] == "polygon"


def test_handle_pay_request(fixture: Fixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})
    url = (
        "https://example.com/.well-known/lnurlp/alice?amount=10000&nonce=n1"
        "&settlementLayer=polygon&assetIdentifier=USDT_POLYGON"
    )

    status, body = fixture.responder.handle_lnurlp_request(url)
    assert status == 200
    assert body["pr"] == "0xABC"
    assert body["disposable"] is False

    status, body = fixture.responder.handle_lnurlp_request(url)
    assert status == 409
    assert body == {"status": "ERROR", "reason": "DUPLICATE_NONCE", "code": "DUPLICATE_NONCE"}


@pytest.mark.parametrize(
    "url, expected_status, expected_code",
    [
        ("https://example.com/.well-known/lnurlp/nobody", 404, "USER_NOT_FOUND"),
        ("https://unknown.com/.well-known/lnurlp/alice", 404, "USER_NOT_FOUND"),
        ("https://example.com/.well-known/lnurla/alice", 400, "INVALID_REQUEST_FORMAT"),
        ("https://example.com/.well-known/lnurlp/alice?amount=1000", 400, "INVALID_REQUEST_FORMAT"),
        (
            "https://example.com/.well-known/lnurlp/alice?amount=1000&nonce=n1",
            400,
            "MISSING_SIGNING_KEY",
        ),
        (
            "https://example.com/.well-known/lnurlp/alice?amount=1000&nonce=n2&settlementLayer=base",
            400,
            "SETTLEMENT_LAYER_NOT_SUPPORTED",
        ),
    ],
)
def test_handle_request_errors(
    fixture: Fixture, url: str, expected_status: int, expected_code: str
) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})

    status, body = fixture.responder.handle_lnurlp_request(url)
    assert status == expected_status
    assert body["status"] == "ERROR"
    assert body["code"] == expected_code


def test_get_lnurl() -> None:
    registry = InMemoryUserRegistry()
    domain = registry.add_domain("a.co")
    responder = UmaResponder(
        registry=registry,
        payment_requests=InMemoryPaymentRequestStore(),
        price_source=RateOracle(FixedPriceTickerSource()),
    )
    assert decode_lnurl(responder.get_lnurl("bob", domain)) == (
        "https://a.co/.well-known/lnurlp/bob"
    )


def test_lookup_uses_domain_limits(fixture: Fixture) -> None:
    domain: Domain = fixture.domain
    domain.currency_settings["BTC"].min_sendable = 5_000
    fixture.registry.add_user("alice", domain.id, addresses={"polygon": "0xABC"})

    response = fixture.responder.generate_lookup_response("alice", domain)
    assert response is not None
    assert response.min_sendable == 5_000
    with pytest.raises(AmountOutOfRangeException):
        fixture.responder.generate_pay_response(
            "alice", domain, 4_000, "n1", settlement_layer="polygon"
        )


def test_duplicate_nonce_is_logged(fixture: Fixture, caplog: pytest.LogCaptureFixture) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})
    fixture.responder.generate_pay_response(
        "alice", fixture.domain, 10_000, "n1", settlement_layer="polygon"
    )

    with caplog.at_level(logging.WARNING, logger="uma_responder.responder"):
        with pytest.raises(DuplicateNonceException, match="DUPLICATE_NONCE"):
            fixture.responder.generate_pay_response(
                "alice", fixture.domain, 10_000, "n1", settlement_layer="polygon"
            )
    assert "duplicate nonce n1" in caplog.text


def test_responder_from_settings() -> None:
    registry = InMemoryUserRegistry()
    domain = registry.add_domain("example.com")
    registry.add_user("alice", domain.id, addresses={"lightning": "a@b.c"})
    store = InMemoryPaymentRequestStore()
    responder = UmaResponder.from_settings(
        Settings(test_mode=True, payment_request_expiry_seconds=60),
        registry=registry,
        payment_requests=store,
        invoice_creator=FakeInvoiceCreator(),
    )

    response = responder.generate_lookup_response("alice", domain)
    assert response is not None
    option = response.get_settlement_option("ln")
    assert option is not None
    assert option.assets[0].multipliers == {"USD": 10_000}

    with pytest.raises(MissingSigningKeyException):
        responder.generate_pay_response("alice", domain, 10_000, "n1")
    record = store.get_by_nonce("n1")
    assert record is not None
    assert record.expires_at - record.created_at == timedelta(seconds=60)


@pytest.mark.parametrize(
    "amount_msats, currency, expected_exception",
    [
        (500, None, AmountOutOfRangeException),
        (10_000, "EUR", InvalidCurrencyException),
    ],
)
def test_nonce_is_consumed_by_rejected_amount(
    fixture: Fixture, amount_msats: int, currency: Optional[str], expected_exception: type
) -> None:
    fixture.registry.add_user("alice", fixture.domain.id, addresses={"polygon": "0xABC"})

    with pytest.raises(expected_exception):
        fixture.responder.generate_pay_response(
            "alice",
            fixture.domain,
            amount_msats,
            "n1",
            currency=currency,
            settlement_layer="polygon",
        )

    with pytest.raises(DuplicateNonceException):
        fixture.responder.generate_pay_response(
            "alice", fixture.domain, 10_000, "n1", settlement_layer="polygon"
        )


def _multi_asset_responder() -> Tuple[UmaResponder, InMemoryUserRegistry, Domain]:
    catalog = SettlementCatalog(
        [
            SettlementEntry("polygon", "polygon", "USDT", "USDT_POLYGON"),
            SettlementEntry("polygon-usdc", "polygon", "USDC", "USDC_POLYGON"),
        ]
    )
    registry = InMemoryUserRegistry(catalog)
    domain = registry.add_domain("example.com")
    responder = UmaResponder(
        registry=registry,
        payment_requests=InMemoryPaymentRequestStore(),
        price_source=RateOracle(FixedPriceTickerSource()),
        catalog=catalog,
    )
    return responder, registry, domain


def test_pay_every_advertised_asset() -> None:
    responder, registry, domain = _multi_asset_responder()
    registry.add_user(
        "alice", domain.id, addresses={"polygon": "0xUSDT", "polygon-usdc": "0xUSDC"}
    )
    lookup = responder.generate_lookup_response("alice", domain)
    assert lookup is not None

    addresses = {"USDT_POLYGON": "0xUSDT", "USDC_POLYGON": "0xUSDC"}
    advertised = [
        (option.settlement_layer, asset.identifier)
        for option in lookup.settlement_options
        for asset in option.assets
    ]
    assert advertised == [("polygon", "USDT_POLYGON"), ("polygon", "USDC_POLYGON")]

    for i, (layer, identifier) in enumerate(advertised):
        response = responder.generate_pay_response(
            "alice",
            domain,
            10_000,
            f"n{i}",
            settlement_layer=layer,
            asset_identifier=identifier,
        )
        assert response.encoded_invoice == addresses[identifier]
        assert response.settlement is not None
        assert response.settlement.asset_identifier == identifier


def test_pay_layer_without_asset_uses_the_users_address() -> None:
    responder, registry, domain = _multi_asset_responder()
    registry.add_user("alice", domain.id, addresses={"polygon-usdc": "0xUSDC"})

    response = responder.generate_pay_response(
        "alice", domain, 10_000, "n1", settlement_layer="polygon"
    )
    assert response.encoded_invoice == "0xUSDC"
    assert response.to_dict()["settlement"]["assetIdentifier"] == "USDC_POLYGON"


def test_empty_settlement_layer_is_not_echoed(fixture: Fixture) -> None:
    fixture.registry.add_user(
        "alice", fixture.domain.id, spark_public_key=_spark_public_key()
    )

    response = fixture.responder.generate_pay_response(
        "alice", fixture.domain, 10_000, "n1", settlement_layer=""
    )
    assert response.encoded_invoice == TEST_INVOICE
    assert response.settlement is None
    assert "settlement" not in response.to_dict()
