"""
End-of-run summary report.

The summary is always produced, even when every packet failed. It is
emitted through logging at WARNING so it survives the default verbosity;
`-q` (ERROR) suppresses everything except errors.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from packetcheck.app.schemas.dispatch import DispatchReport, OutcomeStatus
from packetcheck.app.schemas.results import RunResult

logger = logging.getLogger(__name__)

_RULE = "-" * 71

_UNFINISHED = (
    OutcomeStatus.FAILED,
    OutcomeStatus.TIMED_OUT,
    OutcomeStatus.CANCELLED,
)


def _line(label: str, value: object) -> str:
    return f" {label + ':':<26}{value}"


def summary_lines(result: RunResult) -> List[str]:
    """Build the summary report for one repository scan."""
    documents_total = result.checked_documents
    signatures_total = result.checked_signatures
    digest_note = "" if result.digest_supported else "*"
    validated = not result.skip_validation and result.digest_supported

    run_minutes = result.run_minutes
    lines = [
        _RULE,
        f"Packet Checker Summary Report for {result.path}",
        _RULE,
        f"Run at:                     {result.started_at}",
        "Run time:                   "
        + ("n/a" if run_minutes is None else f"{run_minutes:.3f} minutes"),
        "",
        f"Document packets checked:   {documents_total}",
        f"Signature packets checked:  {signatures_total}{digest_note}",
    ]

    if result.known_exceptions_loaded:
        lines += [
            "",
            "Known Exceptions:",
            f"Document packets skipped:  {result.known_documents_skipped}",
            f"Signature packets skipped: {result.known_signatures_skipped}",
        ]

    lines.append("")

    error_counters = [
        ("Missing documents", result.missing_documents),
        ("Corrupt documents", result.corrupt_documents),
        ("Invalid document hashes", result.invalid_document_hashes),
        ("Skipped documents", result.skipped_documents),
        ("Corrupt signatures", result.corrupt_signatures),
        ("Missing signed content", result.missing_signed_content),
        ("Missing public key", result.missing_keys),
        ("Missing signatures", result.missing_signatures),
        ("Invalid signature texts", result.invalid_signature_texts),
        ("Invalid content hashes", result.invalid_content_hashes),
        ("Invalid signatures", result.invalid_signatures),
        ("Skipped signatures*", result.skipped_signatures),
    ]
    reported_errors = [(label, count) for label, count in error_counters if count]

    if reported_errors or result.errors:
        lines.append("-- Errors --")
        lines += [_line(label, count) for label, count in reported_errors]
        lines.append("")

    lines.append("-- Successful checks --")
    if result.nohash_documents:
        lines.append(_line("Documents w/o hash", result.nohash_documents))
    if validated:
        lines.append(
            _line(
                "Document hashes",
                documents_total
                - result.invalid_document_hashes
                - result.nohash_documents,
            )
        )
    lines.append(_line("Public keys found", signatures_total - result.missing_keys))
    lines.append(
        _line("Signature texts", signatures_total - result.invalid_signature_texts)
    )
    if validated:
        lines.append(
            _line(
                "Content hashes",
                signatures_total - result.invalid_content_hashes,
            )
        )
        lines.append(
            _line("Valid signatures", signatures_total - result.invalid_signatures)
        )
    lines.append("")

    if not result.digest_supported:
        lines += [
            "  * Hashes and public keys could not be validated as the installed",
            "    runtime does not support SHA-512.",
        ]

    lines.append(_RULE)
    return lines


def log_summary(result: RunResult) -> None:
    for line in summary_lines(result):
        logger.warning(line)


def exit_status(results: Iterable[RunResult]) -> int:
    """0 for a clean run, 1 if any repository recorded a failure."""
    return 1 if any(result.has_failures for result in results) else 0


def dispatch_summary_lines(report: DispatchReport) -> List[str]:
    """Build the end-of-run summary for a multi-repository dispatch."""
    lines = [_RULE, "Hosted Packet Checker Summary Report", _RULE]

    for status in OutcomeStatus:
        lines.append(_line(f"Repositories {status.value}", len(report.by_status(status))))

    if report.cancelled:
        lines += ["", "  Run was cancelled before every repository was checked."]

    unfinished = [
        outcome
        for outcome in report.outcomes
        if outcome.status in _UNFINISHED
    ]
    if unfinished:
        lines.append("")
        for outcome in unfinished:
            lines.append(f"  {outcome.status.value.upper()}: {outcome.path}: {outcome.error}")

    failing = [
        outcome.path
        for outcome in report.by_status(OutcomeStatus.COMPLETED)
        if outcome.has_failures
    ]
    if failing:
        lines.append("")
        for path in failing:
            lines.append(f"  FAILURES RECORDED: {path}")

    lines.append(_RULE)
    return lines


def log_dispatch_summary(report: DispatchReport) -> None:
    for line in dispatch_summary_lines(report):
        logger.warning(line)
