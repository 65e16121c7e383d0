# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

from uma_responder.config import Settings, get_settings
from uma_responder.currencies import CURRENCIES, CurrencySettings
from uma_responder.errors import ErrorCode
from uma_responder.exceptions import *
from uma_responder.invoice_creator import ILightningInvoiceCreator
from uma_responder.market_rates import (
    BitfinexTickerSource,
    FixedPriceTickerSource,
    ITickerSource,
    PriceQuote,
    RateOracle,
)
from uma_responder.multipliers import (
    IPriceSource,
    MultiplierCalculator,
    btc_multiplier_for_usd,
)
from uma_responder.payment_requests import (
    InMemoryPaymentRequestStore,
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
from uma_responder.registry import (
    ChainAddressRecord,
    Domain,
    InMemoryUserRegistry,
    IUserRegistry,
    UmaUser,
)
from uma_responder.responder import UmaResponder
from uma_responder.settlement_catalog import (
    DEFAULT_SETTLEMENT_CATALOG,
    SettlementCatalog,
    SettlementEntry,
)
from uma_responder.type_utils import none_throws
from uma_responder.urls import decode_lnurl, encode_lnurl, is_domain_local
from uma_responder.version import UMA_PROTOCOL_VERSION
