import bech32

from uma_responder.exceptions import InvalidRequestException

LNURL_HRP = "lnurl"
LNURLP_PATH = "/.well-known/lnurlp/"


def is_domain_local(domain: str) -> bool:
    domain_tld = domain.split(".")[-1].split(":")[0]
    return (
        domain.startswith("localhost:")
        or domain.startswith("127.0.0.1:")
        or domain_tld == "local"
        or domain_tld == "internal"
    )


def lnurlp_url(domain: str, username: str) -> str:
    scheme = "http" if is_domain_local(domain) else "https"
    return f"{scheme}://{domain}{LNURLP_PATH}{username}"


def encode_lnurl(url: str) -> str:
    data = bech32.convertbits(url.encode("utf8"), 8, 5)
    if data is None:
        raise ValueError("Failed to convert to bech32")
    # Upper case keeps QR codes in alphanumeric mode.
    return bech32.bech32_encode(LNURL_HRP, data).upper()


def decode_lnurl(lnurl: str) -> str:
    hrp, data = bech32.bech32_decode(lnurl.lower().removeprefix("lightning:"))
    if hrp != LNURL_HRP or data is None:
        raise InvalidRequestException(f"Invalid LNURL {lnurl}.")
    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise InvalidRequestException(f"Invalid LNURL {lnurl}.")
    return bytes(decoded).decode("utf8")
