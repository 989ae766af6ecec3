"""
Signature packet validation.

States: ContentPresence -> TextConsistency -> HashConsistency ->
KeyResolution -> SignatureCheck -> Done.

The checks are independent: a missing or unreadable signed-content file
only prevents the hash comparison and is reported as `missing_content`. KeyResolution needs the repository's user registry
and is performed by the RepositoryWalker, which adds `missing_key` to the
mapping returned here.
"""

from __future__ import annotations

import logging

from packetcheck.app.checks.signature_crypto import verify_signature
from packetcheck.app.schemas.packets import SignaturePacket
from packetcheck.app.schemas.results import ErrorKind, ValidationErrors
from packetcheck.app.utils.hashing import (
    compute_file_digest,
    digest_support_available,
)

logger = logging.getLogger(__name__)

SIGNATURE_TEXT_DELIMITER = "~~"


def generated_signature_text(signature: SignaturePacket) -> str:
    """
    Reconstruct the canonical text a signer affirmed.

    Signer id, affirmed wording, signature date and content hash, in that
    order, each enclosed by the delimiter.
    """
    parts = [
        signature.signer_id,
        signature.wording,
        signature.date,
        signature.content_hash,
    ]
    return (
        SIGNATURE_TEXT_DELIMITER
        + SIGNATURE_TEXT_DELIMITER.join(parts)
        + SIGNATURE_TEXT_DELIMITER
    )


class SignatureValidator:
    """Validates one signature packet against the bytes on disk."""

    def __init__(self, digest_supported: bool | None = None) -> None:
        self._digest_supported = (
            digest_support_available()
            if digest_supported is None
            else digest_supported
        )

    @property
    def digest_supported(self) -> bool:
        return self._digest_supported

    def validate(self, signature: SignaturePacket) -> ValidationErrors:
        logger.info(
            " * validating %s at %s", signature.signature_id, signature.path
        )

        errors: ValidationErrors = {}

        content_present = self._check_content_presence(signature, errors)
        self._check_text(signature, errors)
        # Without SHA-512 the whole packet abstains via skipped_signature
        if content_present and self._digest_supported:
            self._check_content_hash(signature, errors)
        self._check_signature(signature, errors)

        return errors

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def _check_content_presence(
        self, signature: SignaturePacket, errors: ValidationErrors
    ) -> bool:
        signed_content_path = signature.signed_content_path
        if signed_content_path.is_file():
            return True

        logger.error(
            "  - ERROR: %s Cannot validate document hash for missing "
            "document at %s",
            signature.signature_id,
            signed_content_path,
        )
        errors[ErrorKind.MISSING_CONTENT] = str(signed_content_path)
        return False

    def _check_text(
        self, signature: SignaturePacket, errors: ValidationErrors
    ) -> None:
        generated = generated_signature_text(signature)

        if generated == signature.text:
            logger.info(
                "  - OK:  Generated signature text is consistent with "
                "signature packet"
            )
            return

        logger.error(
            "  - ERROR: %s Generated signature text is inconsistent with "
            "signature packet",
            signature.signature_id,
        )
        errors[ErrorKind.INVALID_SIGNATURE_TEXT] = [generated, signature.text]

    def _check_content_hash(
        self, signature: SignaturePacket, errors: ValidationErrors
    ) -> None:
        try:
            generated = compute_file_digest(signature.signed_content_path)
        except OSError as exc:
            logger.error(
                "  - ERROR: %s Signed content at %s could not be read: %s",
                signature.signature_id,
                signature.signed_content_path,
                exc,
            )
            errors[ErrorKind.MISSING_CONTENT] = str(signature.signed_content_path)
            return

        if generated == signature.content_hash:
            logger.info(
                "  - OK:  Generated document hash is consistent with "
                "signature packet"
            )
            return

        logger.error(
            "  - ERROR: %s Generated document hash is inconsistent with "
            "signature packet",
            signature.signature_id,
        )
        errors[ErrorKind.INVALID_CONTENT_HASH] = [
            generated,
            signature.content_hash,
        ]

    def _check_signature(
        self, signature: SignaturePacket, errors: ValidationErrors
    ) -> None:
        if not self._digest_supported:
            logger.info(
                "  - SKIPPED: Signature cannot be validated without "
                "SHA-512 support"
            )
            errors[ErrorKind.SKIPPED_SIGNATURE] = True
            return

        if verify_signature(signature.public_key, signature.value, signature.text):
            logger.info("  - OK:  Signature is valid")
            return

        logger.error(
            "  - ERROR: %s Signature is invalid", signature.signature_id
        )
        errors[ErrorKind.INVALID_SIGNATURE] = [
            signature.public_key,
            signature.value,
        ]
