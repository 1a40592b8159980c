"""
Wayback Archiver Orchestrator: drives each address through check, save,
verification and history fallback, one address at a time.
"""

from __future__ import annotations

import time
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from wayback_archiver.utils.rate_limiter import FixedPacer, Sleeper
from .logger import ErrorTracker
from .models import (ArchiveRecord, DuplicateEntry, EtaUpdate, Outcome, ProcessingResult,
                     ProgressUpdate, Severity, StatusEvent, check_url_for, save_url_for)
from .status_resolver import ArchiveStatusResolver, SECONDARY_AVAILABILITY
from .status_tracker import ProgressTracker
from .submission import SubmissionClient
from .url_processor import DeduplicationResult, URLProcessor
from .verification import VerificationEngine


@dataclass
class RunConfig:
    api_key: Optional[str] = None
    request_timeout: float = 15.0
    submit_timeout: float = 15.0
    propagation_delay_secs: float = 8.0
    pacing_delay_secs: float = 1.5
    verify_attempts: int = 5
    verify_base_delay_ms: float = 3000
    secondary_source: str = SECONDARY_AVAILABILITY  # availability|cdx
    history_limit: int = 10
    normalize_urls: bool = True


class AddressState(str, Enum):
    PENDING = "Pending"
    CHECKING = "Checking"
    ALREADY_ARCHIVED = "AlreadyArchived"
    NEEDS_SUBMISSION = "NeedsSubmission"
    SUBMITTING = "Submitting"
    AWAITING_PROPAGATION = "AwaitingPropagationDelay"
    VERIFYING = "Verifying"
    VERIFIED = "Verified"
    VERIFICATION_FAILED = "VerificationFailed"
    HISTORY_FALLBACK = "HistoryFallback"
    ERROR = "Error"


@dataclass
class BatchReport:
    results: List[ProcessingResult] = field(default_factory=list)
    duplicates: List[DuplicateEntry] = field(default_factory=list)
    stopped: bool = False

    def all_rows(self) -> List[ProcessingResult]:
        """Processed results followed by the rows mirrored onto duplicates."""
        return self.results + mirror_duplicates(self.results, self.duplicates)


def mirror_duplicates(results: Sequence[ProcessingResult],
                      duplicates: Iterable[DuplicateEntry]) -> List[ProcessingResult]:
    """
    Give each duplicate address a copy of its canonical address's result.
    Duplicates whose canonical address never ran (stopped batch) get no row.
    """
    by_address = {r.address: r for r in results}
    mirrored = []
    for dup in duplicates:
        canonical = by_address.get(dup.duplicate_of)
        if canonical is None:
            continue
        mirrored.append(ProcessingResult(
            address=dup.address,
            outcome=canonical.outcome,
            archive_record=canonical.archive_record,
            details=canonical.details + (f"Duplicate of {dup.duplicate_of}",),
            manual_url=canonical.manual_url,
        ))
    return mirrored


class ArchiveController:
    def __init__(self,
                 config: Optional[RunConfig] = None,
                 resolver: Optional[ArchiveStatusResolver] = None,
                 submitter: Optional[SubmissionClient] = None,
                 sleeper: Optional[Sleeper] = None,
                 clock: Callable[[], float] = time.monotonic,
                 logger: Optional[logging.Logger] = None):
        self.config = config or RunConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self._stop_event = threading.Event()
        self._stop_announced = False
        self._should_stop: Optional[Callable[[], bool]] = None
        self.sleeper = sleeper or Sleeper(should_stop=self.stop_requested)
        self.resolver = resolver or ArchiveStatusResolver(
            timeout=self.config.request_timeout,
            secondary_source=self.config.secondary_source,
            normalize_urls=self.config.normalize_urls,
        )
        self.submitter = submitter or SubmissionClient(api_key=self.config.api_key,
                                                       timeout=self.config.submit_timeout)
        self.verifier = VerificationEngine(self.resolver, sleeper=self.sleeper)
        self.pacer = FixedPacer(self.config.pacing_delay_secs, sleeper=self.sleeper)
        self.processor = URLProcessor()
        self.tracker: Optional[ProgressTracker] = None
        self.errors = ErrorTracker(self.logger)
        self._status_subscribers: List[Callable[[StatusEvent], None]] = []
        self._progress_subscribers: List[Callable[[ProgressUpdate], None]] = []
        self._eta_subscribers: List[Callable[[EtaUpdate], None]] = []

    # Observer registration
    def subscribe_status(self, callback: Callable[[StatusEvent], None]):
        self._status_subscribers.append(callback)

    def subscribe_progress(self, callback: Callable[[ProgressUpdate], None]):
        self._progress_subscribers.append(callback)

    def subscribe_eta(self, callback: Callable[[EtaUpdate], None]):
        self._eta_subscribers.append(callback)

    def stop(self):
        """Request a cooperative stop. The address in flight still finishes."""
        self._stop_event.set()
        self._announce_stop()
        self.sleeper.wake()

    def _announce_stop(self):
        if not self._stop_announced:
            self._stop_announced = True
            self._publish(StatusEvent("Stopping the process...", Severity.WARNING))

    def stop_requested(self) -> bool:
        if self._stop_event.is_set():
            return True
        return bool(self._should_stop and self._should_stop())

    def run_batch(self, raw_text: str,
                  on_progress: Optional[Callable[[ProgressUpdate], None]] = None,
                  on_eta: Optional[Callable[[EtaUpdate], None]] = None,
                  should_stop: Optional[Callable[[], bool]] = None) -> BatchReport:
        """
        Parse, deduplicate and process pasted text.

        Raises:
            InvalidInputError: If the text holds no valid address
        """
        batch: DeduplicationResult = self.processor.prepare_batch(raw_text)
        results = self.run(batch.unique, on_progress=on_progress, on_eta=on_eta, should_stop=should_stop)
        return BatchReport(results=results, duplicates=list(batch.duplicates),
                           stopped=self.tracker.state.stopped if self.tracker else False)

    def run(self, addresses: Sequence[str],
            on_progress: Optional[Callable[[ProgressUpdate], None]] = None,
            on_eta: Optional[Callable[[EtaUpdate], None]] = None,
            should_stop: Optional[Callable[[], bool]] = None) -> List[ProcessingResult]:
        """
        Process addresses strictly in order, one at a time.

        Every processed address yields exactly one ProcessingResult, reported
        to the tracker before the next address starts. A stop request is
        honoured before each address; remaining addresses are left untouched.
        """
        addresses = list(addresses)
        self._stop_event.clear()
        self._stop_announced = False
        self._should_stop = should_stop
        if hasattr(self.sleeper, 'reset'):
            self.sleeper.reset()
        self.errors = ErrorTracker(self.logger)

        tracker = ProgressTracker(clock=self.clock)
        for callback in self._progress_subscribers + ([on_progress] if on_progress else []):
            tracker.subscribe_progress(callback)
        for callback in self._eta_subscribers + ([on_eta] if on_eta else []):
            tracker.subscribe_eta(callback)
        self.tracker = tracker
        tracker.initialize(addresses)

        self.logger.info(f"Starting batch of {len(addresses)} address(es)")
        if self.config.api_key:
            self.logger.info("Using provided API key for save requests")
        else:
            self.logger.info("No API key provided, using public access (rate limits may apply)")

        results: List[ProcessingResult] = []
        for idx, address in enumerate(addresses):
            if self.stop_requested():
                self._announce_stop()
                break

            result = self._process_safely(address)
            self.logger.info(f"[{idx + 1}/{len(addresses)}] {address}: {result.outcome.value}")
            results.append(result)
            tracker.record_outcome(result)

            if idx < len(addresses) - 1:
                self.pacer.wait()

        if self.stop_requested() and len(results) < len(addresses):
            tracker.stop()
            self._publish(StatusEvent("Process stopped by user.", Severity.WARNING))
        else:
            tracker.complete()
            self._publish(StatusEvent("All URLs have been processed!", Severity.INFO))

        self._log_summary(tracker.summary())
        return results

    def _process_safely(self, address: str) -> ProcessingResult:
        try:
            return self._process_one(address)
        except Exception as e:
            error_id = self.errors.log_error(e, context="processing address", url=address)
            manual_url = save_url_for(address)
            details = [f"Error: {e}", f"Try archiving manually: {manual_url}", f"Error ID: {error_id}"]
            self._publish(StatusEvent("Error processing URL", Severity.ERROR, address, "\n".join(details[:2])))
            return ProcessingResult(address=address, outcome=Outcome.ERROR, details=details, manual_url=manual_url)

    def _process_one(self, address: str) -> ProcessingResult:
        details: List[str] = []

        self._enter(address, AddressState.CHECKING)
        record = self.resolver.resolve(address)
        if record.is_archived:
            self._enter(address, AddressState.ALREADY_ARCHIVED)
            details.append(f"Already archived on {record.formatted_date} via {record.source.value} lookup")
            details.append(f"View archive: {record.snapshot_url}")
            return self._succeed(address, Outcome.ALREADY_ARCHIVED, record, details, "URL already archived")

        if record.error:
            self.errors.log_warning(f"Warning during archive check: {record.error}", context="checking", url=address)
            details.append(f"Status check warning: {record.error}")

        self._enter(address, AddressState.NEEDS_SUBMISSION)
        self._enter(address, AddressState.SUBMITTING)
        self._publish(StatusEvent("Archive request sent", Severity.INFO, address, "Processing..."))
        submission = self.submitter.submit(address)
        if not submission.accepted:
            self._enter(address, AddressState.ERROR)
            details.append(f"Submission failed: {submission.error}")
            details.append(f"Try archiving manually: {submission.manual_fallback_url}")
            self._publish(StatusEvent("Error processing URL", Severity.ERROR, address, "\n".join(details)))
            return ProcessingResult(address=address, outcome=Outcome.ERROR, details=details,
                                    manual_url=submission.manual_fallback_url)

        self._enter(address, AddressState.AWAITING_PROPAGATION)
        self.sleeper.sleep(self.config.propagation_delay_secs, interruptible=False)

        self._enter(address, AddressState.VERIFYING)
        verification = self.verifier.verify(address,
                                            max_attempts=self.config.verify_attempts,
                                            base_delay_ms=self.config.verify_base_delay_ms)
        details.extend(verification.attempt_log)
        if verification.verified:
            self._enter(address, AddressState.VERIFIED)
            record = verification.archive_record
            details.append(f"Archived on {record.formatted_date} (found via {record.source.value} lookup)")
            details.append(f"View archive: {record.snapshot_url}")
            return self._succeed(address, Outcome.ARCHIVED, record, details, "Successfully archived")

        self._enter(address, AddressState.VERIFICATION_FAILED)
        self._enter(address, AddressState.HISTORY_FALLBACK)
        history = self.resolver.find_in_history(address, limit=self.config.history_limit)
        if history.is_archived:
            self._enter(address, AddressState.VERIFIED)
            details.append(f"Recently archived on {history.formatted_date} (found in archive history)")
            details.append(f"View archive: {history.snapshot_url}")
            return self._succeed(address, Outcome.ARCHIVED, history, details, "Found in archive history")

        self._enter(address, AddressState.VERIFICATION_FAILED)
        if history.error:
            details.append(f"History lookup failed: {history.error}")
        manual_url = check_url_for(address)
        details.append(verification.message)
        details.append(f"Check manually later at: {manual_url}")
        self._publish(StatusEvent(
            "Archive verification failed", Severity.WARNING, address,
            f"Archive request was sent but could not be verified.\n"
            f"It may still be processing - check manually later at: {manual_url}",
        ))
        return ProcessingResult(address=address, outcome=Outcome.VERIFICATION_FAILED,
                                details=details, manual_url=manual_url)

    def _succeed(self, address: str, outcome: Outcome, record: ArchiveRecord,
                 details: List[str], message: str) -> ProcessingResult:
        self._publish(StatusEvent(message, Severity.SUCCESS, address, "\n".join(details[-2:]),
                                  record.snapshot_url))
        return ProcessingResult(address=address, outcome=outcome, archive_record=record, details=details)

    def _enter(self, address: str, state: AddressState):
        self.logger.debug(f"{address} -> {state.value}")

    def _publish(self, event: StatusEvent):
        for callback in self._status_subscribers:
            callback(event)

    def _log_summary(self, summary: Dict):
        self.logger.info(
            f"Batch finished: {summary['processed']}/{summary['total']} processed, "
            f"{summary['already_archived']} already archived, {summary['archived']} archived, "
            f"{summary['verification_failed']} unverified, {summary['error']} error(s)"
        )
        errors = self.errors.get_error_summary()
        if errors['total_errors'] or errors['total_warnings']:
            self.logger.info(f"Errors: {errors['total_errors']} {errors['error_types']}, "
                             f"warnings: {errors['total_warnings']}")

    def write_error_report(self, log_dir: str = "logs") -> Optional[str]:
        """
        Save the last run's errors and warnings next to the logs.

        Returns:
            Report path, or None when the run had nothing to report
        """
        if not self.errors.has_entries:
            return None
        path = Path(log_dir) / f"error_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.txt"
        return str(path) if self.errors.save_error_report(str(path)) else None

    def close(self):
        for client in (self.resolver, self.submitter):
            close = getattr(client, 'close', None)
            if close:
                close()
