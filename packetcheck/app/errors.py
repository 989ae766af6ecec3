"""
Fatal error types for the repository checker.

Per-packet problems are never raised: they are reported as data
(ValidationErrors, CorruptPacket). The exceptions below are reserved for
conditions that make a whole run, or a whole repository scan, impossible.
"""

from __future__ import annotations


class PacketCheckError(RuntimeError):
    """Base class for fatal checker errors."""


class KnownExceptionsError(PacketCheckError):
    """Raised when the known-exceptions file is missing or unparsable."""


class RepositoryConfigurationError(PacketCheckError):
    """Raised when a repository's config.xml cannot be read."""


class ScanInterrupted(PacketCheckError):
    """
    Raised by the walker when its stop check fires between packets.

    `reason` is either "cancelled" or "timed_out".
    """

    def __init__(self, reason: str, path: str) -> None:
        super().__init__(f"Scan of {path} interrupted: {reason}")
        self.reason = reason
        self.path = path
