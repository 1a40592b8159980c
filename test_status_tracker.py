#!/usr/bin/env python3
"""
Tests for progress percentage, ETA smoothing and final progress reports.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

import pytest

from wayback_archiver.core.models import Outcome, ProcessingResult
from wayback_archiver.core.status_tracker import ProgressTracker, format_duration


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def failed(address):
    return ProcessingResult(address=address, outcome=Outcome.ERROR, details=["boom"])


def make_tracker(clock=None):
    tracker = ProgressTracker(clock=clock or FakeClock())
    progress, eta = [], []
    tracker.subscribe_progress(progress.append)
    tracker.subscribe_eta(eta.append)
    return tracker, progress, eta


def test_initialize_emits_zero_percent():
    tracker, progress, eta = make_tracker()
    state = tracker.initialize(["https://a.com", "https://b.com"])

    assert state.total == 2 and state.processed == 0
    assert [(p.percentage, p.processed_count, p.total_count) for p in progress] == [(0, 0, 2)]
    assert eta == []


def test_percentage_monotonic_and_bounded():
    tracker, progress, _ = make_tracker()
    addresses = [f"https://example.com/{i}" for i in range(7)]
    tracker.initialize(addresses)
    for address in addresses:
        tracker.record_outcome(failed(address))

    values = [p.percentage for p in progress]
    assert values == sorted(values)
    assert all(0 <= v <= 100 for v in values)
    assert values[-1] == 100
    assert values[1] == 14  # round(1/7*100)


def test_outcome_counters():
    tracker, _, _ = make_tracker()
    tracker.initialize(["https://a.com", "https://b.com", "https://c.com"])
    tracker.record_outcome(failed("https://a.com"))
    tracker.record_outcome(ProcessingResult(address="https://b.com", outcome=Outcome.VERIFICATION_FAILED))

    summary = tracker.summary()
    assert summary["processed"] == 2
    assert summary["error"] == 1
    assert summary["verification_failed"] == 1
    assert summary["archived"] == 0
    assert not summary["is_complete"]
    assert len(tracker.results()) == 2


def test_eta_uses_exponential_smoothing():
    clock = FakeClock()
    tracker, _, eta = make_tracker(clock)
    tracker.initialize([f"https://example.com/{i}" for i in range(4)])

    clock.advance(10)
    tracker.record_outcome(failed("https://example.com/0"))
    # First sample is taken as-is: 10s per address, 3 remaining
    assert eta[-1].eta_millis == pytest.approx(30000)
    assert eta[-1].remaining_count == 3

    clock.advance(20)
    tracker.record_outcome(failed("https://example.com/1"))
    # Sample = 30s elapsed / 2 processed = 15s; avg = 10*0.7 + 15*0.3 = 11.5s
    assert tracker.state.avg_time_per_address == pytest.approx(11500)
    assert eta[-1].eta_millis == pytest.approx(23000)
    assert eta[-1].remaining_count == 2


def test_stop_reports_actual_progress():
    tracker, progress, _ = make_tracker()
    addresses = [f"https://example.com/{i}" for i in range(5)]
    tracker.initialize(addresses)
    tracker.record_outcome(failed(addresses[0]))
    tracker.record_outcome(failed(addresses[1]))
    tracker.stop()

    last = progress[-1]
    assert (last.percentage, last.processed_count, last.total_count) == (40, 2, 5)
    assert tracker.summary()["is_stopped"]
    assert not tracker.state.running


def test_complete_forces_100_only_when_everything_ran():
    tracker, progress, _ = make_tracker()
    tracker.initialize(["https://a.com", "https://b.com", "https://c.com"])
    for address in ["https://a.com", "https://b.com", "https://c.com"]:
        tracker.record_outcome(failed(address))
    tracker.complete()
    assert progress[-1].percentage == 100

    tracker2, progress2, _ = make_tracker()
    tracker2.initialize(["https://a.com", "https://b.com", "https://c.com"])
    tracker2.record_outcome(failed("https://a.com"))
    tracker2.complete()
    assert progress2[-1].percentage == 33
    assert progress2[-1].processed_count == 1


def test_initialize_resets_state():
    tracker, _, _ = make_tracker()
    tracker.initialize(["https://a.com"])
    tracker.record_outcome(failed("https://a.com"))
    tracker.initialize(["https://b.com", "https://c.com"])
    assert tracker.state.processed == 0
    assert tracker.state.total == 2
    assert tracker.results() == []


def test_record_before_initialize():
    tracker = ProgressTracker()
    with pytest.raises(RuntimeError):
        tracker.record_outcome(failed("https://a.com"))


def test_format_duration():
    assert format_duration(500) == "Less than 1 second"
    assert format_duration(45_000) == "45s"
    assert format_duration(330_000) == "5m 30s"
    assert format_duration(3_600_000) == "1h"
    assert format_duration(3_723_000) == "1h 2m 3s"


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
