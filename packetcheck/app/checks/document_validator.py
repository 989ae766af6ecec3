"""
Document packet validation.

States: ContentCheck -> SignatureReferenceCheck -> Done.

Errors accumulate across both checks into one ValidationErrors mapping;
an empty mapping means the document is fully consistent.
"""

from __future__ import annotations

import logging
from typing import List

from packetcheck.app.schemas.packets import DocumentPacket
from packetcheck.app.schemas.results import ErrorKind, ValidationErrors
from packetcheck.app.utils.hashing import (
    compute_file_digest,
    digest_support_available,
)

logger = logging.getLogger(__name__)


class DocumentValidator:
    """
    Validates one document packet against the bytes on disk.

    Deterministic. Holds no per-document state between calls.
    """

    def __init__(self, digest_supported: bool | None = None) -> None:
        self._digest_supported = (
            digest_support_available()
            if digest_supported is None
            else digest_supported
        )

    @property
    def digest_supported(self) -> bool:
        return self._digest_supported

    def validate(self, document: DocumentPacket) -> ValidationErrors:
        logger.info(" * validating %s at %s", document.document_id, document.path)

        errors: ValidationErrors = {}
        self._check_content(document, errors)
        self._check_signature_references(document, errors)
        return errors

    # ------------------------------------------------------------------
    # ContentCheck
    # ------------------------------------------------------------------

    def _check_content(
        self, document: DocumentPacket, errors: ValidationErrors
    ) -> None:
        content_path = document.content_path

        if not content_path.is_file():
            logger.error(
                "  - ERROR: %s Document content expected at %s",
                document.document_id,
                content_path,
            )
            errors[ErrorKind.CONTENT_MISSING] = str(content_path)
            return

        # Documents may legitimately lack a stored digest
        if not document.hash_exists:
            return

        if not self._digest_supported:
            logger.info(
                "  - SKIPPED: Document hash cannot be validated without "
                "SHA-512 support"
            )
            errors[ErrorKind.SKIPPED_DOCUMENT] = True
            return

        try:
            generated = compute_file_digest(content_path)
        except OSError as exc:
            logger.error(
                "  - ERROR: %s Document content at %s could not be read: %s",
                document.document_id,
                content_path,
                exc,
            )
            errors[ErrorKind.CONTENT_MISSING] = str(content_path)
            return

        if generated == document.stored_hash:
            logger.info(
                "  - OK:  Generated document hash is consistent with %s",
                document.content_name,
            )
        else:
            logger.error(
                "  - ERROR: %s Generated document hash is inconsistent with %s",
                document.document_id,
                document.content_name,
            )
            errors[ErrorKind.INVALID_DOCUMENT_HASH] = [
                generated,
                document.stored_hash,
            ]

    # ------------------------------------------------------------------
    # SignatureReferenceCheck
    # ------------------------------------------------------------------

    def _check_signature_references(
        self, document: DocumentPacket, errors: ValidationErrors
    ) -> None:
        missing: List[str] = []

        for signature_path in document.signature_paths:
            if signature_path.is_file():
                logger.info(
                    "  - OK:  Document signature found at %s", signature_path
                )
            else:
                logger.error(
                    "  - ERROR: Document signature expected at %s",
                    signature_path,
                )
                missing.append(str(signature_path))

        if missing:
            errors[ErrorKind.SIGNATURE_MISSING] = missing
