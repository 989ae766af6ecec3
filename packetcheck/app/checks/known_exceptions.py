"""
Operator-declared known exceptions.

The exceptions file is a YAML mapping of document id to a free-text
comment, one entry per line:

    AMPH9900011803: This file is corrupt because the hard-drive crashed
    AMPH9900011804: This file is known to be corrupt 20 Apr 07

Document ids must load as strings; an all-digit id has to be quoted.

Any document listed here, and every signature belonging to it, is counted
as known-skipped instead of validated. A missing or unparsable file is a
fatal configuration error raised before any scanning begins.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

import yaml

from packetcheck.app.errors import KnownExceptionsError

logger = logging.getLogger(__name__)


class KnownExceptionList:
    """Immutable lookup of document id -> operator comment."""

    def __init__(self, entries: Optional[Mapping[str, str]] = None) -> None:
        self._entries: Dict[str, str] = dict(entries or {})

    @classmethod
    def load(cls, path: Union[str, Path]) -> "KnownExceptionList":
        path = Path(path)

        if not path.exists():
            raise KnownExceptionsError(
                f"Exception list cannot be found at '{path}'. "
                "Check the path and try again."
            )

        try:
            with open(path, "r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle)
        except (yaml.YAMLError, OSError, UnicodeDecodeError) as exc:
            raise KnownExceptionsError(
                f"Exception list at '{path}' could not be loaded. "
                "Please check the file format."
            ) from exc

        if loaded is None:
            loaded = {}

        if not isinstance(loaded, dict):
            raise KnownExceptionsError(
                f"Exception list at '{path}' could not be loaded. "
                "Please check the file format."
            )

        # YAML turns unquoted ids such as 0123 into numbers, which never match
        for document_id in loaded:
            if not isinstance(document_id, str):
                raise KnownExceptionsError(
                    f"Exception list at '{path}' has a document id that is not "
                    f"a string: {document_id!r}. Quote the id and try again."
                )

        entries = {
            document_id: "" if comment is None else str(comment)
            for document_id, comment in loaded.items()
        }
        return cls(entries)

    def comment_for(self, document_id: str) -> Optional[str]:
        return self._entries.get(document_id)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._entries.items())

    def log_loaded(self) -> None:
        if not self._entries:
            return

        logger.info(
            "** known file exceptions list loaded "
            "(all signatures for these documents will be skipped)"
        )
        for document_id, comment in self._entries.items():
            logger.info(" - %s: %s", document_id, comment)
        logger.info("** %d known file exceptions loaded", len(self._entries))
