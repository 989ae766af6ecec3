"""
Parsed repository records.

Each record is constructed by parsing exactly one metadata file and is
immutable thereafter. Records carry the path they were parsed from so that
validators can locate sibling content and signature files.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Packet records (FROZEN)
# ---------------------------------------------------------------------------


class DocumentPacket(BaseModel):
    """
    Metadata record describing one submitted document and its signatures.

    Only signatures whose embedded state is "signed" are referenced.
    """

    document_id: str
    document_type: str
    content_name: str
    stored_hash: Optional[str] = Field(
        None,
        description="SHA-512 digest recorded at submission time, if any",
    )
    signature_ids: List[str] = Field(default_factory=list)
    path: Path

    model_config = ConfigDict(frozen=True)

    @property
    def hash_exists(self) -> bool:
        return self.stored_hash is not None

    @property
    def content_path(self) -> Path:
        return self.path.parent / self.content_name

    @property
    def signature_paths(self) -> List[Path]:
        # The last three characters of a signature id name its file,
        # e.g. TEST0100000037S001 -> signature-001.xml
        return [
            self.path.parent / f"signature-{signature_id[-3:]}.xml"
            for signature_id in self.signature_ids
        ]


class SignaturePacket(BaseModel):
    """Metadata record describing one signing event over a document."""

    signature_id: str
    signer_id: str
    signer_name: str
    public_key: str
    role: str
    content_filename: str
    content_hash: str
    wording: str
    date: str
    text: str
    value: str
    path: Path

    model_config = ConfigDict(frozen=True)

    @property
    def server_id(self) -> str:
        return self.signature_id[:6].lower()

    @property
    def document_id(self) -> str:
        return self.signature_id[:14]

    @property
    def signed_content_path(self) -> Path:
        return self.path.parent / self.content_filename


class UserRecord(BaseModel):
    """
    A known user and every public key they have held.

    `keys` lists the current key first, followed by superseded keys
    loaded from the legacy `<userid>.keys` file.
    """

    user_id: str
    name: str
    version: str = ""
    keys: List[str] = Field(default_factory=list)
    path: Path

    model_config = ConfigDict(frozen=True)


class InstallationIdentity(BaseModel):
    """Installation identity read from a repository's config.xml."""

    customer_id: str = "UNKNOWN"
    installation_id: str = "00"

    model_config = ConfigDict(frozen=True)

    @property
    def server_id(self) -> str:
        return f"{self.customer_id}{self.installation_id}"


class RepositoryEvent(BaseModel):
    """The last recorded repository event, used as the repository timestamp."""

    event_type: str = ""
    occurred: Optional[str] = None

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Parse outcomes
# ---------------------------------------------------------------------------

PacketRecord = Union[
    DocumentPacket,
    SignaturePacket,
    UserRecord,
    InstallationIdentity,
    RepositoryEvent,
]


class ParsedPacket(BaseModel):
    """Successful parse of one metadata file."""

    record: PacketRecord

    model_config = ConfigDict(frozen=True)


class CorruptPacket(BaseModel):
    """A metadata file that could not be parsed into a record."""

    path: Path
    reason: str

    model_config = ConfigDict(frozen=True)


ParseResult = Union[ParsedPacket, CorruptPacket]


__all__ = [
    "DocumentPacket",
    "SignaturePacket",
    "UserRecord",
    "InstallationIdentity",
    "RepositoryEvent",
    "PacketRecord",
    "ParsedPacket",
    "CorruptPacket",
    "ParseResult",
]
