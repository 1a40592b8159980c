"""
Post-submission verification.

Polls the status resolver a bounded number of times after a save request.
Waits between attempts escalate once any attempt has timed out, and the
escalation is carried between attempts as an explicit BackoffState value
rather than living on a client object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from wayback_archiver.utils.rate_limiter import Sleeper
from .models import ArchiveRecord


BACKOFF_FACTOR = 1.5


@dataclass(frozen=True)
class BackoffState:
    timeouts: int = 0

    @property
    def escalated(self) -> bool:
        return self.timeouts > 0

    def observe(self, record: ArchiveRecord) -> "BackoffState":
        if record.timed_out:
            return BackoffState(timeouts=self.timeouts + 1)
        return self

    def delay_ms(self, base_delay_ms: float) -> float:
        # Sticky: once escalated it stays escalated for the rest of the run
        return base_delay_ms * BACKOFF_FACTOR if self.escalated else base_delay_ms


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    archive_record: Optional[ArchiveRecord]
    attempt_log: Tuple[str, ...]
    timeout_issues: bool = False

    @property
    def message(self) -> str:
        if self.verified:
            return "Archive verified."
        return ("Archive request was sent but verification failed. "
                "The URL may still be in the archive processing queue.")


class VerificationEngine:
    def __init__(self, resolver, sleeper: Optional[Sleeper] = None):
        """
        Args:
            resolver: anything with ``resolve(address) -> ArchiveRecord``
            sleeper: delay provider between attempts
        """
        self.resolver = resolver
        self.sleeper = sleeper or Sleeper()
        self.logger = logging.getLogger(__name__)

    def verify(self, address: str, max_attempts: int = 5, base_delay_ms: float = 3000) -> VerificationResult:
        """
        Check repeatedly whether a capture of ``address`` has appeared.

        Returns on the first attempt that finds a snapshot. Otherwise every
        attempt contributes exactly one line to the attempt log and the
        result carries no archive record.
        """
        max_attempts = max(int(max_attempts), 1)
        backoff = BackoffState()
        log = []

        for attempt in range(1, max_attempts + 1):
            record = self.resolver.resolve(address)
            backoff = backoff.observe(record)

            if record.is_archived:
                log.append(f"Attempt {attempt}/{max_attempts}: success, found archive via {record.source.value} lookup.")
                self.logger.info(f"Verified {address} on attempt {attempt}/{max_attempts}")
                return VerificationResult(True, record, tuple(log), backoff.escalated)

            if record.timed_out:
                line = f"Attempt {attempt}/{max_attempts}: timed out."
            elif record.error:
                line = f"Attempt {attempt}/{max_attempts}: lookup failed ({record.error})."
            else:
                line = f"Attempt {attempt}/{max_attempts}: no archive found yet."

            if attempt < max_attempts:
                delay_ms = backoff.delay_ms(base_delay_ms)
                line += f" Waiting {delay_ms:.0f}ms before next attempt."
                log.append(line)
                self.logger.debug(f"{address}: {line}")
                self.sleeper.sleep(delay_ms / 1000.0, interruptible=False)
            else:
                log.append(line)
                self.logger.debug(f"{address}: {line}")

        self.logger.info(f"Verification failed for {address} after {max_attempts} attempts")
        return VerificationResult(False, None, tuple(log), backoff.escalated)
