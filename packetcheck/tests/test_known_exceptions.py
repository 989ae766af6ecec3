"""
Tests for the operator-declared known exceptions list.

Coverage matrix:

  well-formed mapping      → entries and comments available
  empty file               → empty list, not an error
  missing file             → KnownExceptionsError (fatal)
  unparsable / non-mapping → KnownExceptionsError (fatal)
  unquoted numeric id      → KnownExceptionsError (fatal)
"""

import pytest

from packetcheck.app.checks.known_exceptions import KnownExceptionList
from packetcheck.app.errors import KnownExceptionsError
from packetcheck.tests.fixtures.repo_factory import write_exceptions


def test_loads_document_comments(tmp_path):
    path = write_exceptions(
        tmp_path / "exceptions.yml",
        {
            "AMPH9900011803": "This file is corrupt because the hard-drive crashed",
            "AMPH9900011804": "Known to be corrupt 20 Apr 07",
        },
    )

    exceptions = KnownExceptionList.load(path)

    assert len(exceptions) == 2
    assert "AMPH9900011803" in exceptions
    assert "AMPH9900011805" not in exceptions
    assert exceptions.comment_for("AMPH9900011804") == "Known to be corrupt 20 Apr 07"
    assert dict(exceptions)["AMPH9900011803"].startswith("This file")


def test_entry_without_comment_is_still_an_exception(tmp_path):
    path = tmp_path / "exceptions.yml"
    path.write_text("AMPH9900011803:\n", encoding="utf-8")

    exceptions = KnownExceptionList.load(path)

    assert "AMPH9900011803" in exceptions
    assert exceptions.comment_for("AMPH9900011803") == ""


def test_empty_file_is_an_empty_list(tmp_path):
    path = tmp_path / "exceptions.yml"
    path.write_text("", encoding="utf-8")

    assert len(KnownExceptionList.load(path)) == 0


def test_missing_file_is_fatal(tmp_path):
    with pytest.raises(KnownExceptionsError, match="cannot be found"):
        KnownExceptionList.load(tmp_path / "nope.yml")


@pytest.mark.parametrize(
    "content",
    [
        "AMPH9900011803: [unterminated\n",
        "- just\n- a list\n",
    ],
)
def test_unparsable_file_is_fatal(tmp_path, content):
    path = tmp_path / "exceptions.yml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(KnownExceptionsError, match="check the file format"):
        KnownExceptionList.load(path)


def test_unquoted_numeric_id_is_rejected(tmp_path):
    path = tmp_path / "exceptions.yml"
    path.write_text("0123: lost in migration\n", encoding="utf-8")

    with pytest.raises(KnownExceptionsError, match="not a string"):
        KnownExceptionList.load(path)


def test_quoted_numeric_id_is_kept_verbatim(tmp_path):
    path = tmp_path / "exceptions.yml"
    path.write_text('"0123": lost in migration\n', encoding="utf-8")

    assert "0123" in KnownExceptionList.load(path)
