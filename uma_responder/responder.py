# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from uma_responder.config import Settings
from uma_responder.currencies import CURRENCIES, FIAT_CURRENCY_CODES
from uma_responder.exceptions import (
    AddressNotFoundException,
    AmountOutOfRangeException,
    DuplicateNonceException,
    InvalidCurrencyException,
    InvoiceCreationException,
    MissingSigningKeyException,
    UmaException,
    UserNotFoundException,
)
from uma_responder.invoice_creator import ILightningInvoiceCreator
from uma_responder.market_rates import RateOracle
from uma_responder.multipliers import IPriceSource, MultiplierCalculator
from uma_responder.payment_requests import (
    IPaymentRequestStore,
    PaymentRequestRecord,
    PaymentRequestStatus,
)
from uma_responder.protocol.currency import Currency
from uma_responder.protocol.lnurlp_request import LnurlpRequest, parse_lnurlp_request
from uma_responder.protocol.lnurlp_response import LnurlpResponse
from uma_responder.protocol.payreq_response import PayReqResponse
from uma_responder.protocol.settlement import (
    SettlementAsset,
    SettlementInfo,
    SettlementOption,
)
from uma_responder.registry import ChainAddressRecord, Domain, IUserRegistry, UmaUser
from uma_responder.settlement_catalog import (
    DEFAULT_SETTLEMENT_CATALOG,
    LIGHTNING_LAYER,
    SettlementCatalog,
    SettlementEntry,
)
from uma_responder.type_utils import none_throws
from uma_responder.urls import encode_lnurl, lnurlp_url
from uma_responder.version import UMA_PROTOCOL_VERSION

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_REQUEST_EXPIRY = timedelta(hours=1)
LOOKUP_LIMITS_CURRENCY = "BTC"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UmaResponder:
    """
    Answers both phases of the LNURL-pay flow for UMA addresses hosted on this server.

    The lookup phase advertises the settlement options of a user with their multipliers. The pay phase
    resolves the sender's choice of settlement layer into a Lightning invoice or a blockchain address,
    after reserving the caller's nonce in the payment request store.
    """

    def __init__(
        self,
        registry: IUserRegistry,
        payment_requests: IPaymentRequestStore,
        price_source: IPriceSource,
        invoice_creator: Optional[ILightningInvoiceCreator] = None,
        catalog: SettlementCatalog = DEFAULT_SETTLEMENT_CATALOG,
        payment_request_expiry: timedelta = DEFAULT_PAYMENT_REQUEST_EXPIRY,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._registry = registry
        self._payment_requests = payment_requests
        self._multipliers = MultiplierCalculator(price_source)
        self._invoice_creator = invoice_creator
        self._catalog = catalog
        self._payment_request_expiry = payment_request_expiry
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: IUserRegistry,
        payment_requests: IPaymentRequestStore,
        invoice_creator: Optional[ILightningInvoiceCreator] = None,
    ) -> "UmaResponder":
        return cls(
            registry=registry,
            payment_requests=payment_requests,
            price_source=RateOracle.from_settings(settings),
            invoice_creator=invoice_creator,
            payment_request_expiry=timedelta(
                seconds=settings.payment_request_expiry_seconds
            ),
        )

    def generate_lookup_response(
        self, username: str, domain: Domain
    ) -> Optional[LnurlpResponse]:
        """
        Creates the lnurlp response for the first phase of the flow.

        Args:
            username: the user part of the requested UMA address.
            domain: the domain hosting the user.

        Returns:
            The lookup response, or None if no such user exists in the domain.
        """
        user = self._registry.get_user(username, domain.id)
        if user is None:
            return None

        addresses = self._registry.get_active_addresses(user.id)
        currency_codes = domain.active_currency_codes()
        settlement_options = self.build_settlement_options(addresses, currency_codes)
        limits = domain.currency_settings.get(LOOKUP_LIMITS_CURRENCY)
        btc = CURRENCIES[LOOKUP_LIMITS_CURRENCY]

        return LnurlpResponse(
            callback=lnurlp_url(domain.domain, user.username),
            min_sendable=limits.min_sendable if limits else btc.default_min_sendable,
            max_sendable=limits.max_sendable if limits else btc.default_max_sendable,
            encoded_metadata=self._create_metadata(user.username, domain.domain),
            uma_version=UMA_PROTOCOL_VERSION,
            settlement_options=settlement_options,
            currencies=self._create_currencies(settlement_options, currency_codes),
        )

    def build_settlement_options(
        self,
        addresses: Iterable[ChainAddressRecord],
        currency_codes: Iterable[str] = ("USD",),
    ) -> List[SettlementOption]:
        """
        Builds one settlement option per settlement layer, in the order the addresses are given.

        Addresses on chains missing from the catalog are skipped. When several addresses map to the
        same layer and asset identifier, the first one wins.
        """
        currency_codes = list(currency_codes)
        options: Dict[str, SettlementOption] = {}
        multipliers_by_asset: Dict[str, Dict[str, int]] = {}
        for address in addresses:
            entry = self._catalog.resolve(address.chain_key)
            if entry is None:
                logger.debug("Skipping address on unknown chain %s", address.chain_key)
                continue
            option = options.setdefault(
                entry.layer, SettlementOption(settlement_layer=entry.layer, assets=[])
            )
            if any(a.identifier == entry.asset_identifier for a in option.assets):
                continue
            if entry.asset not in multipliers_by_asset:
                multipliers_by_asset[entry.asset] = self._multipliers.compute_multipliers(
                    entry.asset, currency_codes
                )
            option.assets.append(
                SettlementAsset(
                    identifier=entry.asset_identifier,
                    multipliers=dict(multipliers_by_asset[entry.asset]),
                )
            )
        return list(options.values())

    def generate_pay_response(
        self,
        username: str,
        domain: Domain,
        amount_msats: int,
        nonce: str,
        currency: Optional[str] = None,
        settlement_layer: Optional[str] = None,
        asset_identifier: Optional[str] = None,
    ) -> PayReqResponse:
        """
        Creates the pay response for the second phase of the flow.

        Args:
            username: the user part of the requested UMA address.
            domain: the domain hosting the user.
            amount_msats: the amount to receive in millisatoshis.
            nonce: caller-supplied token identifying this payment request. Each nonce can be used once.
            currency: the currency the sender quoted the amount in, if any.
            settlement_layer: the settlement layer chosen by the sender. Defaults to Lightning.
            asset_identifier: the asset chosen by the sender on that layer.

        Raises:
            UserNotFoundException: the user does not exist in the domain.
            InvalidCurrencyException: the currency is not enabled for the domain.
            AmountOutOfRangeException: the amount is outside the domain's limits for the currency.
            DuplicateNonceException: a payment request with this nonce was already created.
            AddressNotFoundException: the user has no address for the requested settlement layer.
            MissingSigningKeyException: Lightning was requested but the user has no Spark public key.
            InvoiceCreationException: the Lightning invoice could not be created.
        """
        user = self._registry.get_user(username, domain.id)
        if user is None:
            raise UserNotFoundException(f"User {username}@{domain.domain} not found")

        is_explicit_settlement = bool(settlement_layer)
        layer = (settlement_layer or LIGHTNING_LAYER).lower()
        entry = self._select_settlement_entry(user, layer, asset_identifier)
        asset = asset_identifier or (entry.asset_identifier if entry else "")

        now = self._clock()
        try:
            self._payment_requests.create(
                PaymentRequestRecord(
                    user_id=user.id,
                    nonce=nonce,
                    amount_msats=amount_msats,
                    currency=currency,
                    settlement_layer=layer,
                    asset_identifier=asset,
                    created_at=now,
                    expires_at=now + self._payment_request_expiry,
                )
            )
        except DuplicateNonceException:
            logger.warning("Rejected duplicate nonce %s for %s", nonce, username)
            raise

        try:
            self._check_limits(domain, currency, amount_msats)
            if entry is None:
                raise AddressNotFoundException(layer)
            if entry.is_lightning:
                encoded_invoice = self._create_lightning_invoice(
                    user, domain, amount_msats
                )
            else:
                encoded_invoice = self._get_settlement_address(user, entry)
        except UmaException:
            self._payment_requests.update(nonce, PaymentRequestStatus.FAILED)
            raise

        self._payment_requests.update(
            nonce, PaymentRequestStatus.ISSUED, encoded_invoice
        )
        return PayReqResponse(
            encoded_invoice=encoded_invoice,
            routes=[],
            disposable=entry.is_lightning,
            success_action={
                "tag": "message",
                "message": f"Payment to {user.username}@{domain.domain} received!",
            },
            settlement=(
                SettlementInfo(layer=entry.layer, asset_identifier=entry.asset_identifier)
                if is_explicit_settlement
                else None
            ),
        )

    def handle_lnurlp_request(self, url: str) -> Tuple[int, Dict[str, Any]]:
        """
        Runs the lookup or pay phase for an incoming `/.well-known/lnurlp/<username>` URL.

        Returns:
            The HTTP status code and the JSON body to send back. Failures use the
            `{"status": "ERROR", "reason": ...}` shape.
        """
        try:
            request = parse_lnurlp_request(url)
            domain = self._registry.get_domain_by_name(request.domain)
            if domain is None:
                raise UserNotFoundException(f"Domain {request.domain} not found")
            if request.is_pay_request():
                return 200, self._pay(request, domain).to_dict()
            response = self.generate_lookup_response(request.username, domain)
            if response is None:
                raise UserNotFoundException(
                    f"User {request.receiver_address} not found"
                )
            return 200, response.to_dict()
        except UmaException as ex:
            return ex.to_http_status_code(), ex.to_dict()

    def get_lnurl(self, username: str, domain: Domain) -> str:
        return encode_lnurl(lnurlp_url(domain.domain, username))

    def _pay(self, request: LnurlpRequest, domain: Domain) -> PayReqResponse:
        return self.generate_pay_response(
            username=request.username,
            domain=domain,
            amount_msats=none_throws(request.amount_msats),
            nonce=none_throws(request.nonce),
            currency=request.currency,
            settlement_layer=request.settlement_layer,
            asset_identifier=request.asset_identifier,
        )

    def _check_limits(
        self, domain: Domain, currency: Optional[str], amount_msats: int
    ) -> None:
        code = currency or LOOKUP_LIMITS_CURRENCY
        settings = domain.currency_settings.get(code)
        if settings is None or not settings.active:
            raise InvalidCurrencyException(
                f"Currency {code} is not supported by {domain.domain}."
            )
        if not settings.accepts(amount_msats):
            raise AmountOutOfRangeException(
                f"Amount {amount_msats} is outside the range [{settings.min_sendable}, {settings.max_sendable}] for {code}."
            )

    def _create_lightning_invoice(
        self, user: UmaUser, domain: Domain, amount_msats: int
    ) -> str:
        if not user.spark_public_key:
            raise MissingSigningKeyException(
                f"Lightning payments require a Spark public key (signing key) for user {user.username}."
            )
        if self._invoice_creator is None:
            raise InvoiceCreationException("No Lightning invoice creator is configured.")
        description = self._create_metadata(user.username, domain.domain)
        try:
            invoice = self._invoice_creator.create_lightning_invoice(
                amount_msats=amount_msats,
                description=description,
                spark_public_key=user.spark_public_key,
            )
        except Exception as ex:  # pylint: disable=broad-except
            logger.error("Lightning invoice creation failed for %s: %s", user.username, ex)
            raise InvoiceCreationException(
                f"Failed to create Lightning invoice: {ex}"
            ) from ex
        if not invoice:
            logger.error("Lightning invoice creator returned no invoice for %s", user.username)
            raise InvoiceCreationException()
        return invoice

    def _select_settlement_entry(
        self, user: UmaUser, layer: str, asset_identifier: Optional[str]
    ) -> Optional[SettlementEntry]:
        candidates = self._catalog.resolve_layer_asset(layer, asset_identifier)
        if not candidates:
            return None
        by_chain_key = {entry.chain_key: entry for entry in candidates}
        # The user's first active address on a matching chain, as advertised at lookup.
        for address in self._registry.get_active_addresses(user.id):
            if address.chain_key in by_chain_key:
                return by_chain_key[address.chain_key]
        return candidates[0]

    def _get_settlement_address(self, user: UmaUser, entry: SettlementEntry) -> str:
        record = user.addresses_by_chain.get(entry.chain_key)
        if record is None or not record.is_active:
            raise AddressNotFoundException(entry.layer)
        return record.address

    def _create_currencies(
        self, settlement_options: List[SettlementOption], currency_codes: List[str]
    ) -> Optional[List[Currency]]:
        btc_multipliers = next(
            (
                option.assets[0].multipliers
                for option in settlement_options
                if option.assets and self._settles_btc(option.settlement_layer)
            ),
            None,
        )
        if btc_multipliers is None:
            return None
        return [
            Currency(
                code=code,
                name=CURRENCIES[code].name,
                symbol=CURRENCIES[code].symbol,
                millisatoshi_per_unit=btc_multipliers[code],
                min_sendable=CURRENCIES[code].default_min_sendable,
                max_sendable=CURRENCIES[code].default_max_sendable,
                decimals=CURRENCIES[code].decimals,
            )
            for code in currency_codes
            if code in FIAT_CURRENCY_CODES and code in btc_multipliers
        ]

    def _settles_btc(self, layer: str) -> bool:
        entry = self._catalog.resolve_layer(layer)
        return entry is not None and entry.asset == "BTC"

    @staticmethod
    def _create_metadata(username: str, domain: str) -> str:
        return json.dumps(
            [
                ["text/plain", f"Pay to {domain} user {username}"],
                ["text/identifier", f"{username}@{domain}"],
            ]
        )
