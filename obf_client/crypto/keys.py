"""RSA key handling for the enrollment handshake.

The enrollment token is produced by the API with its private key using
PKCS#1 v1.5 type 1 padding. Recovering it with the published public key is
the equivalent of OpenSSL's public decrypt.
"""

from __future__ import annotations

import json

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from obf_client.exceptions import KeyParseError, TokenDecryptError

CLIENT_KEY_SIZE = 2048


def load_api_public_key(pem_data: bytes) -> rsa.RSAPublicKey:
    """Parse the API's PEM public key.

    Raises:
        KeyParseError: If the data is not a PEM RSA public key.
    """
    try:
        public_key = serialization.load_pem_public_key(pem_data)
    except (ValueError, TypeError) as e:
        raise KeyParseError.invalid_key(reason=str(e)) from e

    if not isinstance(public_key, rsa.RSAPublicKey):
        raise KeyParseError.invalid_key(reason=f"unsupported key type {type(public_key).__name__}")
    return public_key


def recover_client_id(public_key: rsa.RSAPublicKey, token: bytes) -> str:
    """Decrypt an enrollment token and return the client id it carries.

    Args:
        public_key: The API public key.
        token: Raw (base64-decoded) token bytes.

    Returns:
        The ``id`` field of the decrypted JSON payload.

    Raises:
        TokenDecryptError: If decryption fails or the payload has no id.
    """
    try:
        decrypted = public_key.recover_data_from_signature(token, padding.PKCS1v15(), None)
    except (InvalidSignature, ValueError) as e:
        raise TokenDecryptError.undecryptable(reason=str(e) or "invalid token") from e

    try:
        payload = json.loads(decrypted)
    except (ValueError, UnicodeDecodeError) as e:
        raise TokenDecryptError.undecryptable(reason="payload is not JSON") from e

    client_id = payload.get("id") if isinstance(payload, dict) else None
    if not isinstance(client_id, str) or not client_id:
        raise TokenDecryptError.undecryptable(reason="payload has no client id")
    return client_id


def generate_client_key() -> rsa.RSAPrivateKey:
    """Generate a new RSA private key for the client certificate."""
    return rsa.generate_private_key(public_exponent=65537, key_size=CLIENT_KEY_SIZE)


def encode_private_key_pem(private_key: rsa.RSAPrivateKey) -> bytes:
    """Encode a private key as unencrypted PEM."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
