from __future__ import annotations

import queue
from typing import Iterator, List

from packetcheck.app.publishing.publisher import ResultPublisher
from packetcheck.app.schemas.dispatch import RepositoryOutcome


class MemoryQueuePublisher(ResultPublisher):
    """
    In-memory publisher backed by a thread-safe queue.

    Properties:
    - many producers (dispatcher workers), single consumer
    - never blocks a worker
    - drained in publication order
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[RepositoryOutcome]" = queue.Queue()

    def publish(self, outcome: RepositoryOutcome) -> None:
        self._queue.put_nowait(outcome)

    def drain(self) -> Iterator[RepositoryOutcome]:
        """Yield every outcome published so far, then stop."""
        while True:
            try:
                yield self._queue.get_nowait()
            except queue.Empty:
                return

    def published(self) -> List[RepositoryOutcome]:
        return list(self.drain())
