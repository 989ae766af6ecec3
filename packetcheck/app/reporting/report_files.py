"""
Per-repository report files.

When an output format is selected, a check writes three files below
`<output_dir>/<server_id>/<YYYYmmdd-HHMMSS>/`:

- repository.<fmt>  one row describing the installation
- documents.<fmt>   one row per checked document packet
- signatures.<fmt>  one row per checked signature packet

Paths in rows are relative to the repository root.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import IO, Any, List, Optional, Sequence

from packetcheck.app.context import RepositoryContext
from packetcheck.app.reporting.formatters import (
    OutputFormat,
    RowFormatter,
    build_formatter,
)
from packetcheck.app.schemas.packets import DocumentPacket, SignaturePacket
from packetcheck.app.schemas.results import RunResult

logger = logging.getLogger(__name__)


REPOSITORY_COLUMNS = ["Customer ID", "Installation ID", "Server ID", "Timestamp"]

DOCUMENT_COLUMNS = ["Document ID", "Hash", "Type", "File Name", "File Path"]

SIGNATURE_COLUMNS = [
    "Signature ID",
    "Document ID",
    "Role",
    "Signer ID",
    "Signer Name",
    "Signer Key",
    "Content Path",
    "Content Hash",
    "Acceptance Text",
    "Signature Date",
    "Signature Text",
    "Signature Hash",
]


# ------------------------------------------------------------------
# Row builders
# ------------------------------------------------------------------


def repository_row(result: RunResult) -> List[Any]:
    return [
        result.customer_id,
        result.installation_id,
        result.server_id,
        result.timestamp,
    ]


def document_row(document: DocumentPacket, context: RepositoryContext) -> List[Any]:
    return [
        document.document_id,
        document.stored_hash,
        document.document_type,
        document.content_name,
        context.relativize(document.content_path),
    ]


def signature_row(
    signature: SignaturePacket, context: RepositoryContext
) -> List[Any]:
    return [
        signature.signature_id,
        signature.document_id,
        signature.role,
        signature.signer_id,
        signature.signer_name,
        signature.public_key,
        context.relativize(signature.signed_content_path),
        signature.content_hash,
        signature.wording,
        signature.date,
        signature.text,
        signature.value,
    ]


# ------------------------------------------------------------------
# Files
# ------------------------------------------------------------------


class _FormattedFile:
    """One output file written through a RowFormatter."""

    def __init__(self, path: Path, formatter: RowFormatter) -> None:
        self._formatter = formatter
        self._is_first_row = True
        self._handle: IO[str] = open(path, "w", encoding="utf-8", newline="")
        self._handle.write(formatter.header())

    def write(self, values: Sequence[Any]) -> None:
        self._handle.write(self._formatter.row(values, self._is_first_row))
        self._is_first_row = False

    def close(self) -> None:
        self._handle.write(self._formatter.footer())
        self._handle.close()


class ReportWriter:
    """
    Row sink used by the RepositoryWalker.

    Files are opened lazily on the first row so that an empty scan still
    produces well-formed (header + footer) files on close.
    """

    def __init__(
        self,
        output_dir: Path,
        output_format: OutputFormat,
        context: RepositoryContext,
    ) -> None:
        self._output_dir = Path(output_dir)
        self._format = output_format
        self._context = context

        self._run_dir: Optional[Path] = None
        self._documents: Optional[_FormattedFile] = None
        self._signatures: Optional[_FormattedFile] = None

    @property
    def run_dir(self) -> Optional[Path]:
        return self._run_dir

    def start(self, server_id: str, started_at: datetime) -> None:
        self._run_dir = (
            self._output_dir / server_id / started_at.strftime("%Y%m%d-%H%M%S")
        )
        self._run_dir.mkdir(parents=True, exist_ok=True)
        logger.info("** writing %s report files to %s", self._format.value, self._run_dir)

    def _open(self, stem: str, columns: Sequence[str]) -> _FormattedFile:
        if self._run_dir is None:
            raise RuntimeError("ReportWriter.start() must be called first")
        path = self._run_dir / f"{stem}.{self._format.value}"
        return _FormattedFile(path, build_formatter(self._format, columns))

    def write_document(self, document: DocumentPacket) -> None:
        if self._documents is None:
            self._documents = self._open("documents", DOCUMENT_COLUMNS)
        self._documents.write(document_row(document, self._context))

    def write_signature(self, signature: SignaturePacket) -> None:
        if self._signatures is None:
            self._signatures = self._open("signatures", SIGNATURE_COLUMNS)
        self._signatures.write(signature_row(signature, self._context))

    def close(self, result: RunResult) -> None:
        repository = self._open("repository", REPOSITORY_COLUMNS)
        repository.write(repository_row(result))
        repository.close()

        if self._documents is None:
            self._documents = self._open("documents", DOCUMENT_COLUMNS)
        if self._signatures is None:
            self._signatures = self._open("signatures", SIGNATURE_COLUMNS)

        self._documents.close()
        self._signatures.close()
