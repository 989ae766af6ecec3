"""
Tests for the multi-repository dispatcher.

Coverage matrix:

  every non-dot instance                     → taken exactly once across workers
  missing path / disable_checker marker      → MISSING / DISABLED, zero walker calls
  walker raises                              → FAILED, other repositories unaffected
  stop check reports timed_out / cancelled   → TIMED_OUT / CANCELLED
  scan blocked inside one call               → abandoned as TIMED_OUT / CANCELLED
  cancel() before run                        → nothing scanned
  completed result                           → handed to the publisher
  publisher raises                           → logged, outcome still COMPLETED
"""

import threading
import time

import pytest

from packetcheck.app.coordinator.dispatcher import MultiRepositoryDispatcher
from packetcheck.app.errors import ScanInterrupted
from packetcheck.app.publishing import MemoryQueuePublisher
from packetcheck.app.schemas.dispatch import OutcomeStatus
from packetcheck.app.schemas.results import RunResult
from packetcheck.tests.fixtures.repo_factory import RepositoryBuilder

SUFFIX = "apps/repository"


class FakeWalker:
    def __init__(self, factory, context, should_stop):
        self._factory = factory
        self.context = context
        self.should_stop = should_stop

    def check(self):
        return self._factory.check(self)


class RecordingWalkerFactory:
    """Stands in for RepositoryWalker construction and records every scan."""

    def __init__(self, behaviour=None):
        self._behaviour = behaviour or (lambda walker: None)
        self._lock = threading.Lock()
        self.scanned = []

    def __call__(self, context, should_stop):
        return FakeWalker(self, context, should_stop)

    def check(self, walker):
        with self._lock:
            self.scanned.append(walker.context.root.parent.parent.name)
        self._behaviour(walker)
        return RunResult(path=str(walker.context.root))


def _instance(base, name, *, disabled=False):
    root = base / name / SUFFIX
    root.mkdir(parents=True)
    if disabled:
        (root / "disable_checker").write_text("", encoding="utf-8")
    return root


@pytest.fixture
def base(tmp_path):
    return tmp_path / "zones"


# ---------------------------------------------------------------------------
# Work distribution
# ---------------------------------------------------------------------------

def test_every_instance_processed_exactly_once(base):
    names = [f"zone{index:02d}" for index in range(25)]
    for name in names:
        _instance(base, name)
    (base / ".hidden").mkdir()

    factory = RecordingWalkerFactory(behaviour=lambda walker: time.sleep(0.001))
    report = MultiRepositoryDispatcher(
        base, SUFFIX, workers=4, walker_factory=factory
    ).run()

    assert sorted(factory.scanned) == names
    assert sorted(outcome.name for outcome in report.outcomes) == names
    assert len(report.by_status(OutcomeStatus.COMPLETED)) == 25
    assert report.has_failures is False


def test_missing_and_disabled_instances_are_not_scanned(base):
    _instance(base, "active")
    _instance(base, "paused", disabled=True)
    (base / "empty").mkdir(parents=True)

    factory = RecordingWalkerFactory()
    report = MultiRepositoryDispatcher(base, SUFFIX, walker_factory=factory).run()

    assert factory.scanned == ["active"]
    statuses = {outcome.name: outcome.status for outcome in report.outcomes}
    assert statuses == {
        "active": OutcomeStatus.COMPLETED,
        "paused": OutcomeStatus.DISABLED,
        "empty": OutcomeStatus.MISSING,
    }


def test_failing_repository_does_not_stop_others(base):
    for name in ("a", "b", "c"):
        _instance(base, name)

    def behaviour(walker):
        if walker.context.root.parent.parent.name == "b":
            raise OSError("stale file handle")

    report = MultiRepositoryDispatcher(
        base, SUFFIX, workers=2, walker_factory=RecordingWalkerFactory(behaviour)
    ).run()

    failed = report.by_status(OutcomeStatus.FAILED)
    assert [outcome.name for outcome in failed] == ["b"]
    assert "stale file handle" in failed[0].error
    assert len(report.by_status(OutcomeStatus.COMPLETED)) == 2
    assert report.has_failures is True


# ---------------------------------------------------------------------------
# Timeout and cancellation
# ---------------------------------------------------------------------------

def test_repository_timeout(base):
    _instance(base, "slow")

    def behaviour(walker):
        time.sleep(0.05)
        reason = walker.should_stop()
        if reason:
            raise ScanInterrupted(reason, str(walker.context.root))

    report = MultiRepositoryDispatcher(
        base,
        SUFFIX,
        repository_timeout=0.01,
        walker_factory=RecordingWalkerFactory(behaviour),
    ).run()

    [outcome] = report.outcomes
    assert outcome.status is OutcomeStatus.TIMED_OUT
    assert outcome.has_failures is True


def _blocking_behaviour(release, blocked_name):
    def behaviour(walker):
        if walker.context.root.parent.parent.name == blocked_name:
            release.wait(10)

    return behaviour


def test_timeout_abandons_scan_blocked_in_a_call(base):
    _instance(base, "next")
    _instance(base, "stuck")
    release = threading.Event()

    dispatcher = MultiRepositoryDispatcher(
        base,
        SUFFIX,
        workers=1,
        repository_timeout=0.2,
        walker_factory=RecordingWalkerFactory(_blocking_behaviour(release, "stuck")),
    )
    started = time.monotonic()
    try:
        report = dispatcher.run()
    finally:
        release.set()

    assert time.monotonic() - started < 3
    statuses = {outcome.name: outcome.status for outcome in report.outcomes}
    assert statuses == {
        "next": OutcomeStatus.COMPLETED,
        "stuck": OutcomeStatus.TIMED_OUT,
    }
    assert report.has_failures is True


def test_cancel_abandons_scan_blocked_in_a_call(base):
    _instance(base, "stuck")
    release = threading.Event()

    dispatcher = MultiRepositoryDispatcher(
        base,
        SUFFIX,
        walker_factory=RecordingWalkerFactory(_blocking_behaviour(release, "stuck")),
    )
    timer = threading.Timer(0.2, dispatcher.cancel)
    timer.start()
    try:
        report = dispatcher.run()
    finally:
        timer.cancel()
        release.set()

    assert report.cancelled is True
    assert [outcome.status for outcome in report.outcomes] == [OutcomeStatus.CANCELLED]


def test_no_timeout_by_default(base):
    _instance(base, "slow")
    seen = []

    def behaviour(walker):
        seen.append(walker.should_stop())

    MultiRepositoryDispatcher(
        base, SUFFIX, walker_factory=RecordingWalkerFactory(behaviour)
    ).run()

    assert seen == [None]


def test_cancel_during_scan(base):
    for name in ("a", "b", "c", "d"):
        _instance(base, name)
    dispatcher = None

    def behaviour(walker):
        dispatcher.cancel()
        reason = walker.should_stop()
        if reason:
            raise ScanInterrupted(reason, str(walker.context.root))

    factory = RecordingWalkerFactory(behaviour)
    dispatcher = MultiRepositoryDispatcher(base, SUFFIX, workers=1, walker_factory=factory)
    report = dispatcher.run()

    assert report.cancelled is True
    assert factory.scanned == ["a"]
    assert [outcome.status for outcome in report.outcomes] == [OutcomeStatus.CANCELLED]


def test_cancel_before_run_scans_nothing(base):
    _instance(base, "a")
    factory = RecordingWalkerFactory()
    dispatcher = MultiRepositoryDispatcher(base, SUFFIX, walker_factory=factory)

    dispatcher.cancel()
    report = dispatcher.run()

    assert factory.scanned == []
    assert report.outcomes == []
    assert report.cancelled is True


def test_rejects_empty_pool(base):
    with pytest.raises(ValueError):
        MultiRepositoryDispatcher(base, SUFFIX, workers=0)


# ---------------------------------------------------------------------------
# Publication
# ---------------------------------------------------------------------------

def test_completed_results_are_published(base):
    _instance(base, "a")
    _instance(base, "b", disabled=True)
    publisher = MemoryQueuePublisher()

    MultiRepositoryDispatcher(
        base, SUFFIX, walker_factory=RecordingWalkerFactory(), publisher=publisher
    ).run()

    published = publisher.published()
    assert [outcome.name for outcome in published] == ["a"]
    assert published[0].result.path == str(base / "a" / SUFFIX)


def test_publisher_failure_is_contained(base):
    _instance(base, "a")

    class ExplodingPublisher:
        def publish(self, outcome):
            raise RuntimeError("monitor down")

    report = MultiRepositoryDispatcher(
        base,
        SUFFIX,
        walker_factory=RecordingWalkerFactory(),
        publisher=ExplodingPublisher(),
    ).run()

    assert [outcome.status for outcome in report.outcomes] == [OutcomeStatus.COMPLETED]


# ---------------------------------------------------------------------------
# End to end with the real walker
# ---------------------------------------------------------------------------

def test_scans_real_repositories(base):
    RepositoryBuilder(base / "one" / SUFFIX).add_document(1)
    RepositoryBuilder(base / "two" / SUFFIX, customer_id="AMPH").add_document(
        1, write_content=False
    )

    report = MultiRepositoryDispatcher(base, SUFFIX, workers=2).run()

    results = {outcome.name: outcome.result for outcome in report.outcomes}
    assert results["one"].has_failures is False
    assert results["two"].missing_documents == 1
    assert results["two"].server_id == "AMPH01"
    assert report.has_failures is True
