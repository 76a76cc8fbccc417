from __future__ import annotations

import threading
import time

import pytest

from repoaudit.core.errors import NothingToAnalyzeError
from repoaudit.services.analysis.scheduler import FanOutScheduler


class ConcurrencyProbe:
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.seen: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, path: str) -> None:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.seen.append(path)
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1


def test_respects_concurrency_ceiling() -> None:
    probe = ConcurrencyProbe(delay=0.05)
    paths = [f"f{i}.py" for i in range(12)]

    summary = FanOutScheduler(concurrency=3, unit_timeout=5, batch_deadline=30, poll_interval=0.01).run(
        "job", paths, probe)

    assert probe.peak <= 3
    assert sorted(probe.seen) == sorted(paths)
    assert summary.dispatched == 12
    assert summary.completed == 12
    assert summary.failed == summary.timed_out == summary.not_started == 0


def test_queued_units_are_not_charged_for_waiting() -> None:
    probe = ConcurrencyProbe(delay=0.05)
    paths = [f"f{i}.py" for i in range(12)]

    summary = FanOutScheduler(concurrency=1, unit_timeout=0.5, batch_deadline=30, poll_interval=0.01).run(
        "job", paths, probe)

    assert summary.completed == 12
    assert summary.timed_out == 0


def test_raising_unit_counts_as_failed() -> None:
    def invoke(path: str) -> None:
        if path == "bad.py":
            raise RuntimeError("worker crashed")

    summary = FanOutScheduler(concurrency=2, unit_timeout=5, batch_deadline=30, poll_interval=0.01).run(
        "job", ["a.py", "bad.py", "b.py"], invoke)

    assert summary.completed == 2
    assert summary.failed == 1


def test_unit_timeout_stops_waiting() -> None:
    release = threading.Event()

    def invoke(path: str) -> None:
        if path == "slow.py":
            release.wait(5)

    try:
        summary = FanOutScheduler(concurrency=2, unit_timeout=0.2, batch_deadline=30, poll_interval=0.01).run(
            "job", ["slow.py", "a.py", "b.py"], invoke)
    finally:
        release.set()

    assert summary.timed_out == 1
    assert summary.timed_out_paths == ["slow.py"]
    assert summary.completed == 2
    assert summary.elapsed < 5


def test_batch_deadline_leaves_queued_units_unstarted() -> None:
    release = threading.Event()
    started: list[str] = []

    def invoke(path: str) -> None:
        started.append(path)
        release.wait(5)

    try:
        summary = FanOutScheduler(concurrency=1, unit_timeout=100, batch_deadline=0.2, poll_interval=0.01).run(
            "job", ["a.py", "b.py", "c.py"], invoke)
    finally:
        release.set()

    assert started == ["a.py"]
    assert summary.timed_out == 1
    assert summary.not_started == 2
    assert summary.completed == 0


def test_empty_batch_is_rejected() -> None:
    with pytest.raises(NothingToAnalyzeError):
        FanOutScheduler(concurrency=2).run("job", [], lambda path: None)


def test_summary_as_dict() -> None:
    summary = FanOutScheduler(concurrency=2, unit_timeout=5, batch_deadline=30, poll_interval=0.01).run(
        "job", ["a.py"], lambda path: None)
    data = summary.as_dict()
    assert data["dispatched"] == 1
    assert data["completed"] == 1
    assert set(data) == {"dispatched", "completed", "failed", "timed_out", "not_started", "elapsed"}
