# paygate/x402/auth.py
"""
Bearer credentials for the settlement facilitator.

Each facilitator operation is authenticated with its own short-lived JWT,
scoped to one exact "METHOD host/path" combination. Two key formats are
accepted for the API key secret:
- PEM-encoded EC private key (signed with ES256)
- base64 Ed25519 key, 64 bytes of seed + public key (signed with EdDSA)
"""
import base64
import binascii
import logging
import secrets
import time
from typing import Dict, Optional
from urllib.parse import urlsplit

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from paygate.x402.errors import ConfigurationError

logger = logging.getLogger(__name__)

TOKEN_ISSUER = "cdp"
DEFAULT_EXPIRES_IN = 120  # seconds

# Facilitator operations and the HTTP method each one uses
FACILITATOR_OPERATIONS = {
    "verify": "POST",
    "settle": "POST",
    "supported": "GET",
}


def load_signing_key(secret: str):
    """
    Load the API key secret into a (key, algorithm) pair.

    Raises:
        ConfigurationError: If the secret is neither a PEM EC key nor a base64 Ed25519 key
    """
    text = secret.strip().replace("\\n", "\n")

    if text.startswith("-----BEGIN"):
        try:
            key = serialization.load_pem_private_key(text.encode("utf-8"), password=None)
        except ValueError as e:
            raise ConfigurationError(f"Invalid PEM API key secret: {e}") from e
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise ConfigurationError("PEM API key secret must be an EC private key")
        return key, "ES256"

    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(f"API key secret is not valid base64: {e}") from e
    if len(raw) != 64:
        raise ConfigurationError(
            f"Ed25519 API key secret must decode to 64 bytes, got {len(raw)}"
        )
    return ed25519.Ed25519PrivateKey.from_private_bytes(raw[:32]), "EdDSA"


class CdpTokenMinter:
    """Mints per-request JWTs for facilitator calls."""

    def __init__(self, api_key_id: str, api_key_secret: str, expires_in: int = DEFAULT_EXPIRES_IN):
        self._api_key_id = api_key_id
        self._key, self._algorithm = load_signing_key(api_key_secret)
        self._expires_in = expires_in

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def mint(self, method: str, host: str, path: str, now: Optional[int] = None) -> str:
        """
        Create a token valid only for one method + host + path.

        Args:
            method: HTTP method, e.g. "POST"
            host: Host (and port) of the facilitator
            path: Request path, e.g. "/platform/v2/x402/verify"
            now: Issue time, defaults to the current time

        Returns:
            Encoded JWT string
        """
        issued_at = int(now if now is not None else time.time())
        claims = {
            "sub": self._api_key_id,
            "iss": TOKEN_ISSUER,
            "nbf": issued_at,
            "exp": issued_at + self._expires_in,
            "uris": [f"{method.upper()} {host}{path}"],
        }
        headers = {
            "kid": self._api_key_id,
            "typ": "JWT",
            "nonce": secrets.token_hex(16),
        }
        return jwt.encode(claims, self._key, algorithm=self._algorithm, headers=headers)

    def create_auth_headers(self, facilitator_url: str) -> Dict[str, Dict[str, str]]:
        """
        Build Authorization headers for every facilitator operation.

        Returns:
            {"verify": {...}, "settle": {...}, "supported": {...}}
        """
        parts = urlsplit(facilitator_url)
        base_path = parts.path.rstrip("/")

        headers = {}
        for operation, method in FACILITATOR_OPERATIONS.items():
            token = self.mint(method, parts.netloc, f"{base_path}/{operation}")
            headers[operation] = {"Authorization": f"Bearer {token}"}
        return headers
