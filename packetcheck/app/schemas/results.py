"""
Validation result schemas.

A ValidationErrors mapping, not an exception, is the unit of failure
propagation for a single packet. A RunResult aggregates the counters and
per-packet errors for one repository scan. RunResults are created fresh per
repository and never merged across repositories except for reporting.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Error taxonomy (FROZEN CONTRACT)
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    """
    Symbolic error kinds recorded against a packet.

    The string values appear verbatim in uploaded and serialized results
    and MUST remain stable.
    """

    # Document packets
    CONTENT_MISSING = "content_missing"
    INVALID_DOCUMENT_HASH = "invalid_document_hash"
    SKIPPED_DOCUMENT = "skipped_document"
    SIGNATURE_MISSING = "signature_missing"

    # Signature packets
    MISSING_CONTENT = "missing_content"
    INVALID_SIGNATURE_TEXT = "invalid_signature_text"
    INVALID_CONTENT_HASH = "invalid_content_hash"
    MISSING_KEY = "missing_key"
    INVALID_SIGNATURE = "invalid_signature"
    SKIPPED_SIGNATURE = "skipped_signature"

    @property
    def is_abstention(self) -> bool:
        """Skipped checks are abstentions, not failures."""
        return self in ABSTENTIONS


ABSTENTIONS = frozenset({ErrorKind.SKIPPED_DOCUMENT, ErrorKind.SKIPPED_SIGNATURE})


ValidationErrors = Dict[ErrorKind, Any]


class KeyResolution(str, Enum):
    """Outcome of resolving a signer's embedded public key."""

    IMPORTED_IDENTITY = "imported_identity"
    KEY_MATCHED = "key_matched"
    MISSING = "missing"


# ---------------------------------------------------------------------------
# Per-repository result
# ---------------------------------------------------------------------------


class RunResult(BaseModel):
    """
    Counters and per-packet errors for a single repository scan.

    Counters only ever increase during a scan.
    """

    path: str

    # Installation identity
    customer_id: Optional[str] = None
    installation_id: Optional[str] = None
    server_id: Optional[str] = None
    timestamp: Optional[str] = None

    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    digest_supported: bool = True
    skip_validation: bool = False
    known_exceptions_loaded: int = 0

    # Document packets
    checked_documents: int = 0
    corrupt_documents: int = 0
    missing_documents: int = 0
    invalid_document_hashes: int = 0
    nohash_documents: int = 0
    skipped_documents: int = 0
    known_documents_skipped: int = 0
    missing_signatures: int = 0

    # Signature packets
    checked_signatures: int = 0
    corrupt_signatures: int = 0
    missing_signed_content: int = 0
    missing_keys: int = 0
    invalid_signature_texts: int = 0
    invalid_content_hashes: int = 0
    invalid_signatures: int = 0
    skipped_signatures: int = 0
    known_signatures_skipped: int = 0

    errors: Dict[str, Dict[ErrorKind, Any]] = Field(
        default_factory=dict,
        description="Packet id -> ValidationErrors, for packets with errors",
    )

    model_config = ConfigDict(extra="forbid")

    @property
    def run_minutes(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds() / 60

    @property
    def has_failures(self) -> bool:
        """True if any non-abstention error or corrupt packet was recorded."""
        if self.corrupt_documents or self.corrupt_signatures:
            return True
        return any(
            not kind.is_abstention
            for packet_errors in self.errors.values()
            for kind in packet_errors
        )

    def counters(self) -> Dict[str, int]:
        return {
            name: value
            for name, value in self.model_dump(
                exclude={"errors", "known_exceptions_loaded"}
            ).items()
            if isinstance(value, int) and not isinstance(value, bool)
        }
