from coincurve.keys import PublicKey

from uma_responder.exceptions import InvalidRequestException
from uma_responder.errors import ErrorCode


def load_spark_public_key(public_key_hex: str) -> PublicKey:
    try:
        return PublicKey(bytes.fromhex(public_key_hex))
    except ValueError as ex:
        raise InvalidRequestException(
            "Spark public key must be a hex-encoded secp256k1 public key.",
            ErrorCode.INVALID_INPUT,
        ) from ex


def normalize_spark_public_key(public_key_hex: str) -> str:
    """
    Validates the key and returns its compressed hex encoding.
    """
    return load_spark_public_key(public_key_hex.strip()).format(compressed=True).hex()
