"""Account and certificate key helpers."""

from __future__ import annotations

import json

import josepy
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from acme_orchestrator.models import Account


def generate_account_key() -> josepy.JWKRSA:
    """Generate a new 2048-bit RSA key wrapped as a JWK."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return josepy.JWKRSA(key=private_key)


def serialize_key(key: josepy.JWK) -> str:
    """Serialize a JWK to the JSON string stored on :class:`Account`."""
    return json.dumps(key.to_json())


def load_account_key(account: Account) -> josepy.JWK:
    """Deserialize the account's signing key."""
    return josepy.JWK.from_json(json.loads(account.key_json))


def signature_algorithm(key: josepy.JWK) -> josepy.JWASignature:
    if isinstance(key, josepy.JWKEC):
        return josepy.ES256
    return josepy.RS256


def generate_private_key_pem() -> str:
    """Generate a 2048-bit RSA certificate key and return it as PKCS#8 PEM text."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
