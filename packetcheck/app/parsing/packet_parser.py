"""
Repository metadata parsing.

Every parser here is a pure function of one file's bytes and returns a
ParseResult: either ParsedPacket(record) or CorruptPacket(path, reason).
Unparsable XML and missing required elements are data, not exceptions, so
callers branch on the variant and keep walking the remaining packets.

Optional elements (e.g. an absent stored hash) yield None fields.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional

from lxml import etree

from packetcheck.app.schemas.packets import (
    CorruptPacket,
    DocumentPacket,
    InstallationIdentity,
    ParsedPacket,
    ParseResult,
    RepositoryEvent,
    SignaturePacket,
    UserRecord,
)

logger = logging.getLogger(__name__)


# lxml serializes parsing on a shared parser, so each worker thread gets its own
_local = threading.local()


def xml_parser() -> etree.XMLParser:
    """Return this thread's parser. Entities and network access stay disabled."""
    parser = getattr(_local, "parser", None)
    if parser is None:
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        _local.parser = parser
    return parser


class _MissingElement(Exception):
    """Internal signal for a required element that is absent."""


# ------------------------------------------------------------------
# Low-level helpers
# ------------------------------------------------------------------


def _load_root(path: Path) -> etree._Element:
    tree = etree.parse(str(path), xml_parser())
    root = tree.getroot()
    if root is None:
        raise _MissingElement("document has no root element")
    return root


def _parse_fragment(text: str, wrapper: str) -> etree._Element:
    """Parse a rootless XML fragment by wrapping it in a synthetic root."""
    return etree.fromstring(f"<{wrapper}>\n{text}\n</{wrapper}>", xml_parser())


def _optional_text(node: etree._Element, path: str) -> Optional[str]:
    element = node.find(path)
    if element is None:
        return None
    return element.text or ""


def _required(node: etree._Element, path: str) -> etree._Element:
    element = node.find(path)
    if element is None:
        raise _MissingElement(f"required element <{path}> is missing")
    return element


def _required_text(node: etree._Element, path: str) -> str:
    return _required(node, path).text or ""


def _required_attribute(element: etree._Element, name: str) -> str:
    value = element.get(name)
    if value is None:
        raise _MissingElement(
            f"required attribute {name!r} is missing on <{element.tag}>"
        )
    return value


def _corrupt(path: Path, exc: Exception) -> CorruptPacket:
    reason = f"{type(exc).__name__}: {exc}"
    logger.error("There was a problem parsing %s (%s)", path, reason)
    return CorruptPacket(path=path, reason=reason)


# ------------------------------------------------------------------
# Document packets
# ------------------------------------------------------------------


def parse_document_packet(path: Path) -> ParseResult:
    """Parse a docinfo.xml document packet."""
    try:
        root = _load_root(path)

        document_type = root.get("type", "")
        if document_type == "digital":
            document_type = "experiment"

        content_name = _optional_text(root, "content/name")

        signature_ids: List[str] = []
        for signature in root.findall("signatures/signature"):
            state = _optional_text(signature, "state")
            if state is not None and state.strip().lower() == "signed":
                signature_ids.append(signature.get("sigId", ""))

        record = DocumentPacket(
            document_id=root.get("docId", ""),
            document_type=document_type,
            content_name=content_name if content_name else "UNKNOWN",
            stored_hash=_optional_text(root, "hash[@format='sha512']"),
            signature_ids=signature_ids,
            path=path,
        )
    except (etree.XMLSyntaxError, OSError, _MissingElement) as exc:
        return _corrupt(path, exc)

    return ParsedPacket(record=record)


# ------------------------------------------------------------------
# Signature packets
# ------------------------------------------------------------------


def parse_signature_packet(path: Path) -> ParseResult:
    """
    Parse a signature-NNN.xml signature packet.

    A file whose root element cannot be found is corrupt, never an
    empty signature.
    """
    try:
        root = _load_root(path)

        signer = _required(root, "signer")
        signed_content = _required(root, "signedContent")

        record = SignaturePacket(
            signature_id=root.get("sigId", ""),
            signer_id=_required_attribute(signer, "userId"),
            signer_name=signer.text or "",
            public_key=_required_text(root, "publicKey").strip(),
            role=_required_text(root, "role"),
            content_filename=_required_attribute(signed_content, "filename"),
            content_hash=(signed_content.text or "").strip(),
            wording=_required_text(root, "affirmedWording"),
            date=_required_text(root, "signatureDate"),
            text=_required_text(root, "signatureText"),
            value=_required_text(root, "signatureValue"),
            path=path,
        )
    except (etree.XMLSyntaxError, OSError, _MissingElement) as exc:
        return _corrupt(path, exc)

    return ParsedPacket(record=record)


# ------------------------------------------------------------------
# Users
# ------------------------------------------------------------------


def _legacy_keys(user_path: Path, user_id: str) -> List[str]:
    keys_path = user_path.parent / f"{user_id.lower()}.keys"
    if not keys_path.exists():
        return []

    try:
        keys_root = _parse_fragment(
            keys_path.read_text(encoding="utf-8"), "keys"
        )
    except (etree.XMLSyntaxError, OSError, UnicodeDecodeError) as exc:
        logger.error(
            "Superseded keys at %s could not be loaded: %s", keys_path, exc
        )
        return []

    return [
        (encoded.text or "").strip()
        for encoded in keys_root.findall("keyPair/encodedKey")
    ]


def parse_user_record(path: Path) -> ParseResult:
    """Parse a user XML record together with its superseded keys."""
    try:
        root = _load_root(path)

        user_id = root.get("userId", "")
        keys: List[str] = []

        current = _optional_text(root, "keyPair/encodedKey")
        if current is not None:
            keys.append(current.strip())

        keys.extend(_legacy_keys(path, user_id))

        record = UserRecord(
            user_id=user_id,
            name=_required_text(root, "name"),
            version=root.get("version", ""),
            keys=keys,
            path=path,
        )
    except (etree.XMLSyntaxError, OSError, _MissingElement) as exc:
        return _corrupt(path, exc)

    return ParsedPacket(record=record)


# ------------------------------------------------------------------
# Installation configuration
# ------------------------------------------------------------------


def parse_installation_config(path: Path) -> ParseResult:
    """Parse config.xml into the installation identity."""
    try:
        root = _load_root(path)
        server = _required(root, "ServerId")

        customer_id = _optional_text(server, "CustomerId")
        installation_id = _optional_text(server, "InstallationId")

        record = InstallationIdentity(
            customer_id=customer_id if customer_id else "UNKNOWN",
            installation_id=installation_id if installation_id else "00",
        )
    except (etree.XMLSyntaxError, OSError, _MissingElement) as exc:
        return _corrupt(path, exc)

    return ParsedPacket(record=record)


# ------------------------------------------------------------------
# Event log
# ------------------------------------------------------------------


def parse_last_event(path: Optional[Path]) -> RepositoryEvent:
    """
    Parse the last line of an event log.

    Each line of the log is a standalone XML fragment such as
    `<event type="login" occured="2010-01-14T10:00:00Z"/>`. The attribute
    name is spelled "occured" in repositories.
    """
    if path is None or not path.exists():
        return RepositoryEvent()

    last_line = ""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            for line in handle:
                if line.strip():
                    last_line = line
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Event log %s could not be read: %s", path, exc)
        return RepositoryEvent()

    if not last_line:
        return RepositoryEvent()

    try:
        fragment = _parse_fragment(last_line, "root")
    except etree.XMLSyntaxError:
        logger.error("There was a problem parsing %s", path)
        return RepositoryEvent()

    event = fragment.find("event")
    if event is None:
        return RepositoryEvent()

    return RepositoryEvent(
        event_type=event.get("type", ""),
        occurred=event.get("occured"),
    )
