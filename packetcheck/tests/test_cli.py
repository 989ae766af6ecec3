"""
Tests for the command line entrypoint.

Coverage matrix:

  check, clean repository             → exit 0
  check, failing repository           → exit 1
  check, missing exceptions file      → exit 2
  check, unreadable config.xml        → exit 2
  check, bad year                     → exit 2
  check -c                            → CSV report files written
  hosted                              → exit reflects every repository
  hosted, missing base directory      → exit 2
  hosted, unreadable repository      → summary names the failed path
  --version                          → prints program and version
"""

import logging

import pytest

from packetcheck.app.main import build_parser, main
from packetcheck.app.reporting.formatters import OutputFormat
from packetcheck.tests.fixtures.repo_factory import RepositoryBuilder, rsa_key, write_exceptions


@pytest.fixture
def clean_repo(tmp_path):
    repo = RepositoryBuilder(tmp_path / "repo")
    repo.add_user("alice", key=rsa_key(0))
    repo.add_document(1, signers=[("alice", rsa_key(0))])
    return repo


def test_parser_options():
    args = build_parser().parse_args(["check", "-V", "-s", "-y", "2009", "-j", "-x", "ex.yml", "repo"])

    assert args.command == "check"
    assert args.verbose is True
    assert args.skip_validation is True
    assert args.year == "2009"
    assert args.output_format is OutputFormat.JSON
    assert str(args.exceptions) == "ex.yml"


def test_verbose_and_quiet_are_exclusive():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["check", "-V", "-q", "repo"])


def test_check_clean_repository(clean_repo):
    assert main(["check", "-q", str(clean_repo.root)]) == 0


def test_check_failing_repository(clean_repo):
    clean_repo.add_document(2, write_content=False)

    assert main(["check", "-q", str(clean_repo.root)]) == 1


def test_known_exception_clears_failure(clean_repo, tmp_path):
    missing = clean_repo.add_document(2, write_content=False)
    exceptions = write_exceptions(tmp_path / "exceptions.yml", {missing.document_id: "lost in migration"})

    assert main(["check", "-q", "-x", str(exceptions), str(clean_repo.root)]) == 0


def test_missing_exceptions_file_is_fatal(clean_repo, tmp_path):
    assert main(["check", "-x", str(tmp_path / "nope.yml"), str(clean_repo.root)]) == 2


def test_unreadable_config_is_fatal(clean_repo):
    (clean_repo.root / "config.xml").write_text("<config", encoding="utf-8")

    assert main(["check", str(clean_repo.root)]) == 2


def test_bad_year_is_fatal(clean_repo):
    assert main(["check", "-y", "09", str(clean_repo.root)]) == 2


def test_check_writes_csv_reports(clean_repo, tmp_path):
    output_dir = tmp_path / "out"

    assert main(["check", "-q", "-c", "-o", str(output_dir), str(clean_repo.root)]) == 0

    [run_dir] = (output_dir / "TEST01").iterdir()
    assert sorted(path.name for path in run_dir.iterdir()) == [
        "documents.csv",
        "repository.csv",
        "signatures.csv",
    ]


def test_hosted_reports_any_failure(tmp_path):
    base = tmp_path / "zones"
    RepositoryBuilder(base / "one" / "repo").add_document(1)
    RepositoryBuilder(base / "two" / "repo").add_document(1, write_content=False)

    assert main(["hosted", "-q", "-w", "2", str(base), "repo"]) == 1


def test_hosted_clean(tmp_path):
    base = tmp_path / "zones"
    RepositoryBuilder(base / "one" / "repo").add_document(1)
    (base / "two").mkdir()

    assert main(["hosted", "-q", str(base), "repo"]) == 0


def test_hosted_missing_base_is_fatal(tmp_path):
    assert main(["hosted", "-q", str(tmp_path / "nowhere"), "repo"]) == 2


def test_hosted_summary_names_failed_repository(tmp_path, caplog):
    base = tmp_path / "zones"
    RepositoryBuilder(base / "one" / "repo").add_document(1)
    broken = RepositoryBuilder(base / "two" / "repo")
    (broken.root / "config.xml").write_text("<config", encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        assert main(["hosted", str(base), "repo"]) == 1

    summary = [
        record.getMessage()
        for record in caplog.records
        if record.name == "packetcheck.app.reporting.summary"
        and record.levelno == logging.WARNING
    ]
    assert " Repositories completed:   1" in summary
    assert " Repositories failed:      1" in summary
    [failed] = [line for line in summary if line.startswith("  FAILED: ")]
    assert str(broken.root) in failed
    assert "Unable to read configuration file" in failed


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args(["--version"])

    assert excinfo.value.code == 0
    assert capsys.readouterr().out.startswith("packetcheck ")
