from __future__ import annotations

from typing import Protocol

from packetcheck.app.schemas.dispatch import RepositoryOutcome


class ResultPublisher(Protocol):
    """
    Interface for handing a finished repository result to the outside world.

    Implementations must be:
    - callable from any worker thread
    - fail-safe (publication failures must not crash the scan)
    - observational only
    """

    def publish(self, outcome: RepositoryOutcome) -> None:
        ...


class NullPublisher:
    """
    A safe no-op publisher.

    Used when:
    - no upload URL is configured
    - single-repository checks
    - tests that do not care about publication
    """

    def publish(self, outcome: RepositoryOutcome) -> None:
        return
