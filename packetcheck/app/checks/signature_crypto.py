"""
RSA signature verification for signature packets.

A signature packet embeds the signer's public key (base64 DER
SubjectPublicKeyInfo) and a base64 signature value computed over the UTF-8
bytes of the packet's signature text, using RSA PKCS#1 v1.5 with SHA-512.

Verification failures are data, not program errors: corrupt key material,
non-RSA keys and undecodable signature values all yield False.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

logger = logging.getLogger(__name__)


def load_public_key(public_key_b64: str) -> Optional[rsa.RSAPublicKey]:
    """
    Decode an embedded public key.

    Returns None when the key material is corrupt or not an RSA key.
    """
    try:
        der = base64.b64decode(public_key_b64)
        key = serialization.load_der_public_key(der)
    except (binascii.Error, ValueError, UnsupportedAlgorithm) as exc:
        logger.debug("Public key could not be decoded: %s", exc)
        return None

    if not isinstance(key, rsa.RSAPublicKey):
        logger.debug("Public key is not an RSA key: %s", type(key).__name__)
        return None

    return key


def verify_signature(
    public_key_b64: str,
    signature_b64: str,
    text: str,
) -> bool:
    """Verify a base64 RSA/SHA-512 signature over `text`."""
    key = load_public_key(public_key_b64)
    if key is None:
        return False

    try:
        signature = base64.b64decode(signature_b64)
    except (binascii.Error, ValueError):
        return False

    try:
        key.verify(
            signature,
            text.encode("utf-8"),
            padding.PKCS1v15(),
            hashes.SHA512(),
        )
    except InvalidSignature:
        return False

    return True
