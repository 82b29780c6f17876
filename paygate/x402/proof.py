# paygate/x402/proof.py
"""
Payment proof decoding.

A client proves payment with a single header value: base64 of a JSON document.
For EVM "exact" payments the destination lives at payload.authorization.to.

Decoding never raises. Any malformed input is logged and reported as None so
the gate can treat it as "no valid proof supplied".
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentProofClaim:
    """What a client-submitted proof asserts."""
    asserted_to_address: str
    raw_authorization: Dict[str, Any]
    network: Optional[str] = None
    scheme: Optional[str] = None


def safe_base64_decode(value: str) -> Optional[str]:
    """
    Decode standard or URL-safe base64 (padding optional) into UTF-8 text.

    Returns:
        Decoded text, or None if the value is not valid base64/UTF-8
    """
    data = value.strip()
    if not data:
        return None
    data += "=" * (-len(data) % 4)

    for decoder in (_b64_standard, base64.urlsafe_b64decode):
        try:
            return decoder(data).decode("utf-8")
        except (binascii.Error, ValueError):
            continue
    return None


def _b64_standard(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


def safe_base64_encode(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode_payment_header(header_value: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode a payment header into its JSON document.

    Args:
        header_value: Base64-encoded payment payload

    Returns:
        The decoded JSON object, or None if it cannot be decoded
    """
    if not header_value:
        return None

    decoded_str = safe_base64_decode(header_value)
    if decoded_str is None:
        logger.warning("Failed to decode payment header: invalid base64")
        return None

    try:
        document = json.loads(decoded_str)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse payment header JSON: {e}")
        return None

    if not isinstance(document, dict):
        logger.warning(f"Payment header is not a JSON object: {type(document).__name__}")
        return None

    return document


def declared_network(document: Dict[str, Any]) -> Optional[str]:
    """Network the proof says it pays on (v2 'accepted' block, else v1 top level)."""
    accepted = document.get("accepted")
    if isinstance(accepted, dict) and isinstance(accepted.get("network"), str):
        return accepted["network"]
    network = document.get("network")
    return network if isinstance(network, str) else None


def declared_scheme(document: Dict[str, Any]) -> Optional[str]:
    """Scheme the proof says it uses (v2 'accepted' block, else v1 top level)."""
    accepted = document.get("accepted")
    if isinstance(accepted, dict) and isinstance(accepted.get("scheme"), str):
        return accepted["scheme"]
    scheme = document.get("scheme")
    return scheme if isinstance(scheme, str) else None


def claim_from_document(document: Dict[str, Any]) -> Optional[PaymentProofClaim]:
    """
    Build a claim from an already-decoded proof document.

    Returns:
        The claim with a lower-cased destination, or None if
        payload.authorization.to is missing or not a string
    """
    payload = document.get("payload")
    authorization = payload.get("authorization") if isinstance(payload, dict) else None
    to_address = authorization.get("to") if isinstance(authorization, dict) else None

    if not to_address or not isinstance(to_address, str):
        return None

    return PaymentProofClaim(
        # Lower-case so mixed-case (checksummed) addresses hit the same cache key
        asserted_to_address=to_address.lower(),
        raw_authorization=document,
        network=declared_network(document),
        scheme=declared_scheme(document),
    )


def extract_proof_claim(header_value: Optional[str]) -> Optional[PaymentProofClaim]:
    """
    Extract the asserted destination from a payment header.

    Args:
        header_value: Base64-encoded payment signature header

    Returns:
        PaymentProofClaim with a normalized address, or None if extraction fails
    """
    document = decode_payment_header(header_value)
    if document is None:
        return None

    claim = claim_from_document(document)
    if claim is None:
        logger.warning("Payment header has no payload.authorization.to address")
    return claim
