"""
Value types shared by the resolver, verification engine, controller and
progress tracker.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


WAYBACK_WEB_BASE = "https://web.archive.org/web"
WAYBACK_SAVE_BASE = "https://web.archive.org/save"


class Source(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    HISTORY = "history"


class Outcome(str, Enum):
    ALREADY_ARCHIVED = "AlreadyArchived"
    ARCHIVED = "Archived"
    VERIFICATION_FAILED = "VerificationFailed"
    ERROR = "Error"


class Severity(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


def format_timestamp(timestamp: Optional[str]) -> str:
    """
    Format a Wayback timestamp (YYYYMMDDHHMMSS) as ``YYYY-MM-DD HH:MM:SS``.
    Anything shorter than 14 digits yields ``"Unknown date"``.
    """
    if not timestamp or len(timestamp) < 14:
        return "Unknown date"
    return (f"{timestamp[0:4]}-{timestamp[4:6]}-{timestamp[6:8]} "
            f"{timestamp[8:10]}:{timestamp[10:12]}:{timestamp[12:14]}")


def check_url_for(address: str) -> str:
    """Listing page where the operator can inspect captures by hand."""
    return f"{WAYBACK_WEB_BASE}/*/{address}"


def save_url_for(address: str) -> str:
    """Page where the operator can request a capture by hand."""
    return f"{WAYBACK_SAVE_BASE}/{address}"


@dataclass(frozen=True)
class ArchiveRecord:
    is_archived: bool
    source: Source
    snapshot_url: Optional[str] = None
    snapshot_timestamp: Optional[str] = None
    error: Optional[str] = None
    timed_out: bool = False
    check_url: Optional[str] = None

    def __post_init__(self):
        if self.is_archived and (not self.snapshot_url or not self.snapshot_timestamp):
            raise ValueError("An archived record needs both snapshot_url and snapshot_timestamp")

    @property
    def formatted_date(self) -> Optional[str]:
        if self.snapshot_timestamp is None:
            return None
        return format_timestamp(self.snapshot_timestamp)


@dataclass(frozen=True)
class SubmissionOutcome:
    """
    Result of a save request. ``accepted`` only means the request went out
    without a transport error; it is not proof that a capture exists.
    """
    accepted: bool
    manual_fallback_url: str
    error: Optional[str] = None
    timed_out: bool = False
    status_code: Optional[int] = None


@dataclass(frozen=True)
class ProcessingResult:
    address: str
    outcome: Outcome
    archive_record: Optional[ArchiveRecord] = None
    details: Tuple[str, ...] = ()
    produced_at: datetime = field(default_factory=datetime.now)
    manual_url: Optional[str] = None

    def __post_init__(self):
        needs_record = self.outcome in (Outcome.ALREADY_ARCHIVED, Outcome.ARCHIVED)
        if needs_record != (self.archive_record is not None):
            raise ValueError(f"{self.outcome.value} result must "
                             f"{'carry' if needs_record else 'not carry'} an archive record")
        if self.archive_record is not None and not self.archive_record.is_archived:
            raise ValueError("Archive record attached to a result must be archived")
        object.__setattr__(self, "details", tuple(self.details))

    @property
    def succeeded(self) -> bool:
        return self.archive_record is not None

    @property
    def snapshot_url(self) -> Optional[str]:
        return self.archive_record.snapshot_url if self.archive_record else None

    @property
    def formatted_date(self) -> Optional[str]:
        return self.archive_record.formatted_date if self.archive_record else None


@dataclass(frozen=True)
class DuplicateEntry:
    address: str
    duplicate_of: str


@dataclass(frozen=True)
class StatusEvent:
    message: str
    severity: Severity
    address: Optional[str] = None
    details: str = ""
    snapshot_url: Optional[str] = None


@dataclass(frozen=True)
class ProgressUpdate:
    percentage: int
    processed_count: int
    total_count: int


@dataclass(frozen=True)
class EtaUpdate:
    eta_millis: float
    remaining_count: int


@dataclass
class RunState:
    """
    Mutable state of one batch. Owned by a single ProgressTracker and built
    fresh for every run.
    """
    total: int
    started_at: float
    processed: int = 0
    counts: dict = field(default_factory=lambda: {o: 0 for o in Outcome})
    running: bool = True
    stopped: bool = False
    avg_time_per_address: Optional[float] = None
    results: List[ProcessingResult] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return max(self.total - self.processed, 0)

    @classmethod
    def start(cls, total: int, clock=time.monotonic) -> "RunState":
        return cls(total=total, started_at=clock())
