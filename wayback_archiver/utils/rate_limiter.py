"""
Cooperative delays and fixed-rate pacing.

Every pause in a run (propagation delay, verification retries, pacing
between addresses) goes through a Sleeper so that a stop request can cut
interruptible waits short and tests can record delays instead of sleeping.
"""

from __future__ import annotations

import threading
import time
import logging
from typing import Callable, Optional


class Sleeper:
    def __init__(self, should_stop: Optional[Callable[[], bool]] = None, poll_interval: float = 0.25):
        """
        Args:
            should_stop: cooperative stop flag, polled while sleeping
            poll_interval: how often the flag is polled, in seconds
        """
        self.should_stop = should_stop or (lambda: False)
        self.poll_interval = poll_interval
        self._wake = threading.Event()

    def sleep(self, seconds: float, interruptible: bool = True) -> bool:
        """
        Pause for ``seconds``.

        Returns True when the full delay elapsed, False when an interruptible
        wait was cut short by a stop request.
        """
        deadline = time.monotonic() + max(seconds, 0.0)
        while True:
            if interruptible and self.should_stop():
                return False
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            if not interruptible:
                # wake() only releases interruptible waits
                time.sleep(min(self.poll_interval, remaining))
            elif self._wake.wait(min(self.poll_interval, remaining)):
                return False

    def wake(self):
        """Release any interruptible wait immediately."""
        self._wake.set()

    def reset(self):
        self._wake.clear()


class FixedPacer:
    """Fixed delay inserted between two addresses; never adapts."""

    def __init__(self, delay_secs: float = 1.5, sleeper: Optional[Sleeper] = None):
        self.delay_secs = max(delay_secs, 0.0)
        self.sleeper = sleeper or Sleeper()
        self.logger = logging.getLogger(__name__)

    def wait(self) -> bool:
        if self.delay_secs <= 0:
            return True
        self.logger.debug(f"Pacing for {self.delay_secs:.1f}s before next address")
        return self.sleeper.sleep(self.delay_secs, interruptible=True)
