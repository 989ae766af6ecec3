"""
Repository walker.

Discovers every document packet and signature packet under a repository's
data tree (optionally restricted to one year), classifies each against the
known-exceptions list, and either counts it as known-skipped or routes it
through the matching validator. Per-packet errors are folded into a fresh
RunResult.

A corrupt packet increments the corrupt and checked counters and the walk
continues; only an unreadable config.xml aborts a repository scan.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from packetcheck.app.checks.document_validator import DocumentValidator
from packetcheck.app.checks.known_exceptions import KnownExceptionList
from packetcheck.app.checks.signature_validator import SignatureValidator
from packetcheck.app.checks.user_registry import UserKeyRegistry
from packetcheck.app.config import CheckerConfig
from packetcheck.app.context import RepositoryContext
from packetcheck.app.errors import RepositoryConfigurationError, ScanInterrupted
from packetcheck.app.parsing.packet_parser import (
    parse_document_packet,
    parse_installation_config,
    parse_last_event,
    parse_signature_packet,
)
from packetcheck.app.reporting.report_files import ReportWriter
from packetcheck.app.reporting.summary import log_summary
from packetcheck.app.schemas.packets import (
    CorruptPacket,
    DocumentPacket,
    InstallationIdentity,
    SignaturePacket,
)
from packetcheck.app.schemas.results import (
    ErrorKind,
    KeyResolution,
    RunResult,
    ValidationErrors,
)
from packetcheck.app.utils.hashing import digest_support_available

logger = logging.getLogger(__name__)


# Returns a reason ("cancelled", "timed_out") when the scan must stop
StopCheck = Callable[[], Optional[str]]


def _never_stop() -> Optional[str]:
    return None


def find_event_log(data_path: Path) -> Optional[Path]:
    """
    Locate the repository event log.

    Older repositories keep a single data/events.log. Newer ones keep a
    per-day events.txt; the last non-empty one in the most recent
    <YYYY>/<MM>/<DD> directory is used.
    """
    legacy = data_path / "events.log"
    if legacy.is_file():
        return legacy

    def numbered(parent: Path, width: int) -> List[Path]:
        if not parent.is_dir():
            return []
        children = [
            child
            for child in parent.iterdir()
            if child.is_dir() and len(child.name) == width and child.name[0].isdigit()
        ]
        return sorted(children, reverse=True)

    for year_dir in numbered(data_path, 4):
        for month_dir in numbered(year_dir, 2):
            for day_dir in numbered(month_dir, 2):
                events = day_dir / "events.txt"
                if events.is_file() and events.stat().st_size > 0:
                    return events
    return None


class RepositoryWalker:
    """
    Scans one repository instance.

    Every call to check() re-derives truth from the filesystem and returns
    a new RunResult; nothing is cached between calls.
    """

    def __init__(
        self,
        context: RepositoryContext,
        known_exceptions: Optional[KnownExceptionList] = None,
        *,
        config: Optional[CheckerConfig] = None,
        row_sink: Optional[ReportWriter] = None,
        should_stop: Optional[StopCheck] = None,
        digest_supported: Optional[bool] = None,
    ) -> None:
        self._context = context
        self._known_exceptions = known_exceptions or KnownExceptionList()
        self._config = config or CheckerConfig()
        self._row_sink = row_sink
        self._should_stop = should_stop or _never_stop

        self._digest_supported = (
            digest_support_available()
            if digest_supported is None
            else digest_supported
        )
        self._document_validator = DocumentValidator(self._digest_supported)
        self._signature_validator = SignatureValidator(self._digest_supported)

    @property
    def context(self) -> RepositoryContext:
        return self._context

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check(self) -> RunResult:
        started_at = datetime.now()
        logger.info("Packet Check Start at %s", started_at)

        result = RunResult(
            path=str(self._context.root),
            started_at=started_at,
            digest_supported=self._digest_supported,
            skip_validation=self._config.SKIP_VALIDATION,
            known_exceptions_loaded=len(self._known_exceptions),
        )

        if not self._digest_supported:
            logger.critical(
                "!! SHA-512 digest is not supported - signatures can not be "
                "validated. !!"
            )

        self._known_exceptions.log_loaded()

        identity = self._load_configuration()
        result.customer_id = identity.customer_id
        result.installation_id = identity.installation_id
        result.server_id = identity.server_id
        result.timestamp = self._load_timestamp()

        registry = UserKeyRegistry.load(self._context.users_path)

        if self._row_sink is not None:
            self._row_sink.start(identity.server_id, started_at)

        # Report files are closed even when the walk is interrupted
        try:
            self._walk_documents(result)
            self._walk_signatures(result, registry)
        finally:
            result.finished_at = datetime.now()
            if self._row_sink is not None:
                self._row_sink.close(result)

        logger.info("Packet Check Finished at %s", result.finished_at)
        log_summary(result)
        return result

    # ------------------------------------------------------------------
    # Repository metadata
    # ------------------------------------------------------------------

    def _load_configuration(self) -> InstallationIdentity:
        config_path = self._context.config_path
        logger.info("** loading configuration from %s", config_path)

        outcome = parse_installation_config(config_path)
        if isinstance(outcome, CorruptPacket):
            raise RepositoryConfigurationError(
                f"Unable to read configuration file {config_path}: "
                f"{outcome.reason}"
            )

        identity = outcome.record
        logger.info("** configuration for %s loaded", identity.server_id)
        return identity

    def _load_timestamp(self) -> Optional[str]:
        log_path = find_event_log(self._context.data_path)
        logger.info(" - log found at %s", log_path)

        event = parse_last_event(log_path)
        if event.occurred is None:
            logger.info("** could not load repository timestamp")
        else:
            logger.info("** repository timestamp is: %s", event.occurred)
        return event.occurred

    # ------------------------------------------------------------------
    # Packet enumeration
    # ------------------------------------------------------------------

    def _packet_paths(self, pattern: str) -> Iterator[Path]:
        check_path = self._context.check_path(self._config.YEAR)
        if not check_path.is_dir():
            logger.warning("Nothing to check: %s does not exist", check_path)
            return iter(())
        return iter(sorted(check_path.rglob(pattern)))

    def _validating_note(self, word: str) -> str:
        return "" if self._config.SKIP_VALIDATION else f" and {word}"

    def _checkpoint(self) -> None:
        reason = self._should_stop()
        if reason is not None:
            raise ScanInterrupted(reason, str(self._context.root))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def _walk_documents(self, result: RunResult) -> None:
        logger.info("** checking%s documents", self._validating_note("validating"))

        for path in self._packet_paths("docinfo.xml"):
            self._checkpoint()

            outcome = parse_document_packet(path)
            if isinstance(outcome, CorruptPacket):
                result.corrupt_documents += 1
                result.checked_documents += 1
                continue

            self._check_document(outcome.record, result)

        logger.info("** documents checked%s", self._validating_note("validated"))

    def _check_document(self, document: DocumentPacket, result: RunResult) -> None:
        if document.document_id in self._known_exceptions:
            logger.info(" * skipping %s at %s", document.document_id, document.path)
            logger.info(
                "  - SKIPPED: Known exception [%s]",
                self._known_exceptions.comment_for(document.document_id),
            )
            result.known_documents_skipped += 1
            return

        errors: ValidationErrors = {}
        if not self._config.SKIP_VALIDATION:
            errors = self._document_validator.validate(document)

        if not document.hash_exists:
            result.nohash_documents += 1

        result.checked_documents += 1

        if self._row_sink is not None:
            self._row_sink.write_document(document)

        if errors:
            result.errors[document.document_id] = errors
            if ErrorKind.CONTENT_MISSING in errors:
                result.missing_documents += 1
            if ErrorKind.INVALID_DOCUMENT_HASH in errors:
                result.invalid_document_hashes += 1
            if ErrorKind.SKIPPED_DOCUMENT in errors:
                result.skipped_documents += 1
            if ErrorKind.SIGNATURE_MISSING in errors:
                result.missing_signatures += len(errors[ErrorKind.SIGNATURE_MISSING])

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def _walk_signatures(self, result: RunResult, registry: UserKeyRegistry) -> None:
        logger.info("** checking%s signatures", self._validating_note("validating"))

        for path in self._packet_paths("signature-*.xml"):
            self._checkpoint()

            outcome = parse_signature_packet(path)
            if isinstance(outcome, CorruptPacket):
                result.corrupt_signatures += 1
                result.checked_signatures += 1
                continue

            self._check_signature(outcome.record, result, registry)

        logger.info("** signatures checked%s", self._validating_note("validated"))

    def _check_signature(
        self,
        signature: SignaturePacket,
        result: RunResult,
        registry: UserKeyRegistry,
    ) -> None:
        if signature.document_id in self._known_exceptions:
            logger.info(" * skipping %s at %s", signature.signature_id, signature.path)
            logger.info(
                "  - SKIPPED: Known exception [%s]",
                self._known_exceptions.comment_for(signature.document_id),
            )
            result.known_signatures_skipped += 1
            return

        errors: ValidationErrors = {}
        if not self._config.SKIP_VALIDATION:
            errors = self._signature_validator.validate(signature)
            self._resolve_key(signature, registry, errors)

        result.checked_signatures += 1

        if self._row_sink is not None:
            self._row_sink.write_signature(signature)

        if errors:
            result.errors[signature.signature_id] = errors
            if ErrorKind.MISSING_CONTENT in errors:
                result.missing_signed_content += 1
            if ErrorKind.MISSING_KEY in errors:
                result.missing_keys += 1
            if ErrorKind.INVALID_SIGNATURE_TEXT in errors:
                result.invalid_signature_texts += 1
            if ErrorKind.INVALID_CONTENT_HASH in errors:
                result.invalid_content_hashes += 1
            if ErrorKind.INVALID_SIGNATURE in errors:
                result.invalid_signatures += 1
            if ErrorKind.SKIPPED_SIGNATURE in errors:
                result.skipped_signatures += 1

    @staticmethod
    def _resolve_key(
        signature: SignaturePacket,
        registry: UserKeyRegistry,
        errors: ValidationErrors,
    ) -> None:
        resolution = registry.resolve(
            signature.signer_id,
            signature.server_id,
            signature.public_key,
        )

        if resolution is KeyResolution.IMPORTED_IDENTITY:
            logger.info(
                "  - OK:  Signer %s is an imported identity from %s",
                signature.signer_id,
                signature.server_id,
            )
        elif resolution is KeyResolution.KEY_MATCHED:
            logger.info("  - OK:  User public key is consistent with database")
        else:
            logger.error(
                "  - ERROR: %s User public key not found: %s/%s (this may not "
                "be a problem - make sure you can find the identity certificate)",
                signature.signature_id,
                signature.signer_id,
                signature.server_id,
            )
            errors[ErrorKind.MISSING_KEY] = {signature.public_key: signature.signer_id}
