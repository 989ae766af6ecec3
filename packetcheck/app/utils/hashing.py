"""
Cryptographic hashing utilities.

Provides the single digest used throughout the checker for document content
and signed content: SHA-512, lowercase hex. Files are streamed in fixed-size
chunks so large content is never held resident.

IMPORTANT DESIGN RULE:
- This module hashes bytes, and bytes only. Comparison against stored
  digests happens in the validators.
"""

from __future__ import annotations

import hashlib
import logging
from functools import lru_cache
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

DIGEST_ALGORITHM = "sha512"

_CHUNK_SIZE = 1024 * 1024

# Known-answer vector for SHA-512("TEST")
_SELF_TEST_INPUT = b"TEST"
_SELF_TEST_DIGEST = (
    "7bfa95a688924c47c7d22381f20cc926f524beacb13f84e203d4bd8cb6ba2fce"
    "81c57a5f059bf3d509926487bde925b3bcee0635e4f7baeba054e5dba696b2bf"
)


@lru_cache(maxsize=1)
def digest_support_available() -> bool:
    """
    Check that the runtime provides a working SHA-512 implementation.

    When this returns False the validators abstain (skipped_document /
    skipped_signature) instead of comparing digests or verifying
    signatures.
    """
    try:
        digest = hashlib.new(DIGEST_ALGORITHM, _SELF_TEST_INPUT).hexdigest()
    except ValueError as exc:
        logger.critical("SHA-512 digest unavailable: %s", exc)
        return False
    return digest == _SELF_TEST_DIGEST


def compute_digest(data: Union[bytes, bytearray]) -> str:
    """Compute the SHA-512 hex digest of in-memory bytes."""
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(
            f"compute_digest expects bytes, got {type(data).__name__}"
        )
    return hashlib.new(DIGEST_ALGORITHM, data).hexdigest()


def compute_file_digest(path: Union[str, Path]) -> str:
    """
    Compute the SHA-512 hex digest of a file's raw bytes.

    Raises OSError if the file cannot be read; callers check for presence
    before hashing.
    """
    digest = hashlib.new(DIGEST_ALGORITHM)
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
