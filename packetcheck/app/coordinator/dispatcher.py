"""
Multi-repository dispatcher.

Scans every repository instance found under a base directory using a fixed
pool of worker threads. Instance names are placed on a single thread-safe
queue exactly once and each worker drains it with get_nowait(), so every
name is taken by at most one worker.

For an instance name N the scanned repository is <base>/<N>/<suffix>.
Repositories that are missing or carry a `disable_checker` marker are
recorded but never scanned. A failing repository is logged and recorded;
it never stops the other workers.

The per-repository timeout is enforced twice: the walker's stop check
fires between packets, and the worker stops waiting for a scan that is
stuck inside a single blocking call and records it as timed out.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from packetcheck.app.checks.known_exceptions import KnownExceptionList
from packetcheck.app.context import RepositoryContext
from packetcheck.app.coordinator.repository_walker import RepositoryWalker, StopCheck
from packetcheck.app.errors import ScanInterrupted
from packetcheck.app.publishing.publisher import NullPublisher, ResultPublisher
from packetcheck.app.schemas.dispatch import (
    DispatchReport,
    OutcomeStatus,
    RepositoryOutcome,
)
from packetcheck.app.schemas.results import RunResult

logger = logging.getLogger(__name__)


DISABLE_MARKER = "disable_checker"

CANCELLED = "cancelled"
TIMED_OUT = "timed_out"

# Builds the walker for one repository given its context and stop check
WalkerFactory = Callable[[RepositoryContext, StopCheck], RepositoryWalker]

_BANNER = "=" * 72

# How often a waiting worker re-checks cancellation and the deadline
_WAIT_INTERVAL_SECONDS = 0.1


class MultiRepositoryDispatcher:
    def __init__(
        self,
        base_path: Path,
        path_suffix: str,
        *,
        workers: int = 4,
        repository_timeout: Optional[float] = None,
        walker_factory: Optional[WalkerFactory] = None,
        publisher: Optional[ResultPublisher] = None,
        known_exceptions: Optional[KnownExceptionList] = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")

        self._base_path = Path(base_path)
        self._path_suffix = path_suffix
        self._workers = workers
        self._repository_timeout = repository_timeout
        self._publisher: ResultPublisher = publisher or NullPublisher()
        self._known_exceptions = known_exceptions
        self._walker_factory = walker_factory or self._default_walker

        self._cancel_event = threading.Event()
        self._outcomes: List[RepositoryOutcome] = []
        self._outcomes_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Ask every worker to stop at its next repository or packet."""
        logger.warning("Cancellation requested")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(self) -> DispatchReport:
        work: "queue.Queue[str]" = queue.Queue()
        for name in self.instance_names():
            work.put(name)

        logger.info(
            "Dispatching %s repositories to %s workers",
            work.qsize(),
            self._workers,
        )

        threads = [
            threading.Thread(
                target=self._worker,
                args=(work,),
                name=f"packetcheck-worker-{index}",
                daemon=True,
            )
            for index in range(self._workers)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        with self._outcomes_lock:
            outcomes = list(self._outcomes)

        return DispatchReport(outcomes=outcomes, cancelled=self.cancelled)

    def instance_names(self) -> List[str]:
        return sorted(
            entry.name
            for entry in self._base_path.iterdir()
            if not entry.name.startswith(".")
        )

    def repository_path(self, name: str) -> Path:
        return self._base_path / name / self._path_suffix

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _worker(self, work: "queue.Queue[str]") -> None:
        logger.info("Checker worker started %s", threading.current_thread().name)

        while not self._cancel_event.is_set():
            try:
                name = work.get_nowait()
            except queue.Empty:
                break

            logger.info(
                "Checker worker running on %s remaining=%s thread=%s",
                name,
                work.qsize(),
                threading.current_thread().name,
            )
            self._record(self._process(name))

        logger.info("Nothing else to do so quitting")

    def _process(self, name: str) -> RepositoryOutcome:
        repository = self.repository_path(name)

        if not repository.exists():
            logger.info("**** No directory %s", repository)
            return self._outcome(name, repository, OutcomeStatus.MISSING)

        if (repository / DISABLE_MARKER).exists():
            logger.info(_BANNER)
            logger.info(
                "Not Running on %s because %s is present", repository, DISABLE_MARKER
            )
            logger.info(_BANNER)
            return self._outcome(name, repository, OutcomeStatus.DISABLED)

        logger.info(_BANNER)
        logger.info("Running on %s", repository)
        logger.info(_BANNER)

        deadline = (
            time.monotonic() + self._repository_timeout
            if self._repository_timeout is not None
            else None
        )
        context = RepositoryContext(root=repository)
        walker = self._walker_factory(context, self._stop_check(deadline))

        try:
            result = self._scan(walker, repository, deadline)
        except ScanInterrupted as exc:
            status = (
                OutcomeStatus.TIMED_OUT
                if exc.reason == TIMED_OUT
                else OutcomeStatus.CANCELLED
            )
            logger.error("%s", exc)
            return self._outcome(name, repository, status, error=str(exc))
        except Exception as exc:
            logger.exception("Error Running on %s", repository)
            return self._outcome(
                name, repository, OutcomeStatus.FAILED, error=str(exc)
            )

        outcome = self._outcome(name, repository, OutcomeStatus.COMPLETED, result=result)
        self._publish(outcome)
        return outcome

    def _stop_check(self, deadline: Optional[float]) -> StopCheck:
        def should_stop() -> Optional[str]:
            if self._cancel_event.is_set():
                return CANCELLED
            if deadline is not None and time.monotonic() > deadline:
                return TIMED_OUT
            return None

        return should_stop

    def _scan(
        self,
        walker: RepositoryWalker,
        repository: Path,
        deadline: Optional[float],
    ) -> RunResult:
        """
        Run walker.check() on its own daemon thread.

        The worker waits in short intervals so that a scan blocked inside a
        single filesystem call can still be abandoned on timeout or cancel.
        An abandoned scan keeps its thread until the call returns, at which
        point its stop check fires and the thread exits.
        """
        box: Dict[str, Any] = {}

        def target() -> None:
            try:
                box["result"] = walker.check()
            except Exception as exc:
                box["error"] = exc

        thread = threading.Thread(
            target=target,
            name=f"{threading.current_thread().name}-scan",
            daemon=True,
        )
        thread.start()

        while True:
            thread.join(_WAIT_INTERVAL_SECONDS)
            if not thread.is_alive():
                break
            if self._cancel_event.is_set():
                logger.error("Abandoning scan of %s: cancelled", repository)
                raise ScanInterrupted(CANCELLED, str(repository))
            if deadline is not None and time.monotonic() > deadline:
                logger.error("Abandoning scan of %s: timed out", repository)
                raise ScanInterrupted(TIMED_OUT, str(repository))

        if "error" in box:
            raise box["error"]
        return box["result"]

    def _publish(self, outcome: RepositoryOutcome) -> None:
        try:
            self._publisher.publish(outcome)
        except Exception:
            logger.exception("Publishing result for %s failed", outcome.path)

    def _record(self, outcome: RepositoryOutcome) -> None:
        with self._outcomes_lock:
            self._outcomes.append(outcome)

    def _default_walker(
        self, context: RepositoryContext, should_stop: StopCheck
    ) -> RepositoryWalker:
        return RepositoryWalker(
            context,
            self._known_exceptions,
            should_stop=should_stop,
        )

    @staticmethod
    def _outcome(
        name: str,
        repository: Path,
        status: OutcomeStatus,
        *,
        result: Optional[RunResult] = None,
        error: Optional[str] = None,
    ) -> RepositoryOutcome:
        return RepositoryOutcome(
            name=name,
            path=str(repository),
            status=status,
            result=result,
            error=error,
        )
