"""
Command line entrypoint.

    packetcheck --version
    packetcheck check  [-V|-q] [-s] [-y YEAR] [-c|-j] [-o DIR] [-x FILE] REPOSITORY
    packetcheck hosted [-V|-q] [-u URL] [-w N] [-t SECONDS] [-x FILE] BASE SUFFIX

`check` scans a single repository. `hosted` scans every instance found
under BASE, reading <BASE>/<instance>/<SUFFIX> for each.

Exit status: 0 when clean, 1 when any failure was recorded, 2 on fatal
configuration errors.
"""

from __future__ import annotations

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from packetcheck.app.checks.known_exceptions import KnownExceptionList
from packetcheck.app.config import CheckerConfig, HostedSettings, get_settings
from packetcheck.app.context import RepositoryContext
from packetcheck.app.coordinator.dispatcher import MultiRepositoryDispatcher
from packetcheck.app.coordinator.repository_walker import RepositoryWalker
from packetcheck.app.errors import KnownExceptionsError, RepositoryConfigurationError
from packetcheck.app.publishing import HttpFormPublisher, NullPublisher
from packetcheck.app.reporting.formatters import OutputFormat
from packetcheck.app.reporting.report_files import ReportWriter
from packetcheck.app.reporting.summary import exit_status, log_dispatch_summary

logger = logging.getLogger(__name__)


EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_FATAL = 2


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _add_verbosity(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("-V", "--verbose", action="store_true", help="Log progress for every packet")
    group.add_argument("-q", "--quiet", action="store_true", help="Only log errors")


def _package_version() -> str:
    try:
        return version("packetcheck")
    except PackageNotFoundError:
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="packetcheck",
        description="Validate document and signature packets in a repository.",
    )
    parser.add_argument("-v", "--version", action="version",
                        version=f"%(prog)s {_package_version()}")
    commands = parser.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check", help="Check a single repository")
    _add_verbosity(check)
    check.add_argument("-s", "--skip-validation", action="store_true",
                       help="Count packets without validating hashes or signatures")
    check.add_argument("-y", "--year", default=None,
                       help="Only check data/<YEAR>")
    fmt = check.add_mutually_exclusive_group()
    fmt.add_argument("-c", "--csv", dest="output_format", action="store_const",
                     const=OutputFormat.CSV, help="Write CSV report files")
    fmt.add_argument("-j", "--json", dest="output_format", action="store_const",
                     const=OutputFormat.JSON, help="Write JSON report files")
    check.add_argument("-o", "--output-dir", type=Path, default=Path("output"),
                       help="Base directory for report files (default: output)")
    check.add_argument("-x", "--exceptions", type=Path, default=None, metavar="FILE",
                       help="YAML file of known exceptions to skip")
    check.add_argument("repository", type=Path, help="Repository root directory")

    hosted = commands.add_parser("hosted", help="Check every repository under a base directory")
    _add_verbosity(hosted)
    hosted.add_argument("-u", "--upload", dest="upload_url", default=None, metavar="URL",
                        help="Post each result to this repository monitor URL")
    hosted.add_argument("-w", "--workers", type=int, default=None, metavar="N",
                        help="Number of worker threads (default: 4)")
    hosted.add_argument("-t", "--timeout", dest="repository_timeout_seconds", type=float,
                        default=None, metavar="SECONDS",
                        help="Give up on a repository scan after this many seconds")
    hosted.add_argument("-x", "--exceptions", type=Path, default=None, metavar="FILE",
                        help="YAML file of known exceptions to skip")
    hosted.add_argument("base", type=Path, help="Directory holding repository instances")
    hosted.add_argument("suffix", help="Path of the repository inside each instance")

    return parser


def configure_logging(args: argparse.Namespace) -> None:
    if args.verbose:
        level = logging.INFO
    elif args.quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")


def _load_exceptions(path: Optional[Path]) -> KnownExceptionList:
    if path is None:
        return KnownExceptionList()
    return KnownExceptionList.load(path)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def run_check(args: argparse.Namespace) -> int:
    config = CheckerConfig(
        YEAR=args.year,
        SKIP_VALIDATION=args.skip_validation,
        EXCEPTIONS_PATH=args.exceptions,
        OUTPUT_FORMAT=args.output_format,
        OUTPUT_DIR=args.output_dir,
    )

    known_exceptions = _load_exceptions(config.EXCEPTIONS_PATH)
    context = RepositoryContext(root=args.repository)

    row_sink = None
    if config.OUTPUT_FORMAT is not None:
        row_sink = ReportWriter(config.OUTPUT_DIR, config.OUTPUT_FORMAT, context)

    walker = RepositoryWalker(
        context,
        known_exceptions,
        config=config,
        row_sink=row_sink,
    )
    result = walker.check()
    return exit_status([result])


def run_hosted(args: argparse.Namespace) -> int:
    overrides = {
        key: value
        for key, value in {
            "workers": args.workers,
            "repository_timeout_seconds": args.repository_timeout_seconds,
            "upload_url": args.upload_url,
        }.items()
        if value is not None
    }
    settings = HostedSettings(**overrides) if overrides else get_settings()

    if not args.base.is_dir():
        logger.error("Base directory %s does not exist", args.base)
        return EXIT_FATAL

    known_exceptions = _load_exceptions(args.exceptions)

    if settings.upload_url is not None:
        publisher = HttpFormPublisher(
            str(settings.upload_url),
            timeout_seconds=settings.upload_timeout_seconds,
        )
    else:
        publisher = NullPublisher()

    dispatcher = MultiRepositoryDispatcher(
        args.base,
        args.suffix,
        workers=settings.workers,
        repository_timeout=settings.repository_timeout_seconds,
        publisher=publisher,
        known_exceptions=known_exceptions,
    )

    try:
        report = dispatcher.run()
    except KeyboardInterrupt:
        dispatcher.cancel()
        logger.error("Interrupted, remaining repositories were not checked")
        return EXIT_FAILURES
    finally:
        if isinstance(publisher, HttpFormPublisher):
            publisher.close()

    log_dispatch_summary(report)

    return EXIT_FAILURES if report.has_failures else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args)

    handlers = {"check": run_check, "hosted": run_hosted}

    try:
        return handlers[args.command](args)
    except ValidationError as exc:
        logger.error("Invalid options: %s", exc)
        return EXIT_FATAL
    except (KnownExceptionsError, RepositoryConfigurationError) as exc:
        logger.error("%s", exc)
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
