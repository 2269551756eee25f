"""Hashing and signature checks for firmware images."""

from __future__ import annotations

import hashlib
from typing import Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa


def calculate_sha256(data: bytes) -> str:
    """Return the SHA-256 digest of ``data`` as lower-case hex."""
    return hashlib.sha256(data).hexdigest()


def verify_signature(
    data: bytes, signature: str, public_key: Union[str, bytes]
) -> bool:
    """Check a hex-encoded signature over ``data`` against a PEM public key.

    RSA keys use PKCS#1 v1.5 with SHA-256, EC keys ECDSA with SHA-256, and
    Ed25519 keys plain Ed25519. Any malformed input gives False.
    """
    try:
        raw_signature = bytes.fromhex(signature)
        pem = public_key.encode("ascii") if isinstance(public_key, str) else public_key
        key = serialization.load_pem_public_key(pem)
    except (ValueError, TypeError, UnicodeError, UnsupportedAlgorithm):
        return False

    try:
        if isinstance(key, rsa.RSAPublicKey):
            key.verify(raw_signature, data, padding.PKCS1v15(), hashes.SHA256())
        elif isinstance(key, ec.EllipticCurvePublicKey):
            key.verify(raw_signature, data, ec.ECDSA(hashes.SHA256()))
        elif isinstance(key, ed25519.Ed25519PublicKey):
            key.verify(raw_signature, data)
        else:
            return False
    except (InvalidSignature, ValueError):
        return False
    return True