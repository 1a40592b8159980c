"""
Progress and ETA tracking.

Aggregates per-address outcomes into counts, a percentage and a smoothed
time-remaining estimate, and pushes them to subscribers synchronously in
the order outcomes are recorded.
"""

from __future__ import annotations

import math
import time
import logging
from typing import Callable, Dict, Iterable, List, Optional, Any

from .models import EtaUpdate, Outcome, ProcessingResult, ProgressUpdate, RunState


SMOOTHING_WEIGHT = 0.3

ProgressCallback = Callable[[ProgressUpdate], None]
EtaCallback = Callable[[EtaUpdate], None]


def format_duration(ms: float) -> str:
    """Format milliseconds as e.g. "5m 30s"."""
    if ms < 1000:
        return "Less than 1 second"

    seconds = int((ms / 1000) % 60)
    minutes = int((ms / (1000 * 60)) % 60)
    hours = int(ms / (1000 * 60 * 60))

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if seconds > 0 or not parts:
        parts.append(f"{seconds}s")
    return " ".join(parts)


class ProgressTracker:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self._progress_subscribers: List[ProgressCallback] = []
        self._eta_subscribers: List[EtaCallback] = []
        self.state: Optional[RunState] = None

    def subscribe_progress(self, callback: ProgressCallback) -> None:
        self._progress_subscribers.append(callback)

    def subscribe_eta(self, callback: EtaCallback) -> None:
        self._eta_subscribers.append(callback)

    def initialize(self, addresses: Iterable[str]) -> RunState:
        """Start a fresh run and report 0% right away."""
        total = len(list(addresses))
        self.state = RunState.start(total, clock=self.clock)
        self.logger.info(f"Tracking {total} address(es)")
        self._emit_progress()
        return self.state

    def record_outcome(self, result: ProcessingResult) -> None:
        state = self._require_state()
        state.processed += 1
        state.counts[result.outcome] += 1
        state.results.append(result)

        elapsed_ms = (self.clock() - state.started_at) * 1000.0
        per_item = elapsed_ms / state.processed
        if state.avg_time_per_address is None:
            state.avg_time_per_address = per_item
        else:
            state.avg_time_per_address = (state.avg_time_per_address * (1 - SMOOTHING_WEIGHT)
                                          + per_item * SMOOTHING_WEIGHT)

        self._emit_progress()
        self._emit_eta()

    def percentage(self) -> int:
        state = self.state
        if state is None or not state.total:
            return 0
        # Half-up rounding, so 12.5% reads as 13%
        pct = int(math.floor(state.processed / state.total * 100 + 0.5))
        return min(max(pct, 0), 100)

    def eta_millis(self) -> float:
        state = self._require_state()
        if state.avg_time_per_address is None:
            return 0.0
        return state.avg_time_per_address * state.remaining

    def stop(self) -> None:
        """Manual stop: the final report shows what was actually processed."""
        state = self._require_state()
        state.stopped = True
        state.running = False
        self._emit_progress()

    def complete(self) -> None:
        """Natural end: 100% is reported only if every address was processed."""
        state = self._require_state()
        state.running = False
        if state.processed >= state.total:
            self._emit(ProgressUpdate(100, state.processed, state.total))
        else:
            self._emit_progress()

    def results(self) -> List[ProcessingResult]:
        return list(self.state.results) if self.state else []

    def summary(self) -> Dict[str, Any]:
        state = self._require_state()
        return {
            'total': state.total,
            'processed': state.processed,
            'already_archived': state.counts[Outcome.ALREADY_ARCHIVED],
            'archived': state.counts[Outcome.ARCHIVED],
            'verification_failed': state.counts[Outcome.VERIFICATION_FAILED],
            'error': state.counts[Outcome.ERROR],
            'is_complete': state.processed >= state.total,
            'is_stopped': state.stopped,
            'progress': self.percentage(),
            'elapsed_ms': (self.clock() - state.started_at) * 1000.0,
        }

    def _require_state(self) -> RunState:
        if self.state is None:
            raise RuntimeError("ProgressTracker.initialize() has not been called")
        return self.state

    def _emit_progress(self):
        state = self._require_state()
        self._emit(ProgressUpdate(self.percentage(), state.processed, state.total))

    def _emit(self, update: ProgressUpdate):
        for callback in self._progress_subscribers:
            callback(update)

    def _emit_eta(self):
        state = self._require_state()
        update = EtaUpdate(self.eta_millis(), state.remaining)
        for callback in self._eta_subscribers:
            callback(update)
