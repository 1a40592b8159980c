#!/usr/bin/env python3
"""
Backend tests for the Wayback Archiver.

Covers the logging system and error tracker, then wires the real
resolver and submission clients into the controller over mocked HTTP
sessions to run a small batch end to end.
"""

import logging
import sys
from pathlib import Path
from unittest.mock import Mock

sys.path.insert(0, str(Path(__file__).parent))

import pytest

from wayback_archiver.core.controller import ArchiveController, RunConfig
from wayback_archiver.core.logger import ArchiverLogger, ErrorTracker
from wayback_archiver.core.models import Outcome, Source
from wayback_archiver.core.status_resolver import ArchiveStatusResolver
from wayback_archiver.core.submission import SubmissionClient
from wayback_archiver.utils.file_manager import export_results_csv


def test_logging_system(tmp_path):
    archiver_logger = ArchiverLogger(log_dir=str(tmp_path), app_name="wayback_archiver_test")
    logger = archiver_logger.setup_logger(logging.WARNING)
    try:
        component = archiver_logger.get_logger("controller")
        assert component.name == "wayback_archiver_test.controller"

        component.info("batch started")
        component.error("save endpoint unreachable")
        for handler in logger.handlers:
            handler.flush()

        main_log = (tmp_path / "wayback_archiver_test.log").read_text(encoding='utf-8')
        error_log = (tmp_path / "wayback_archiver_test_errors.log").read_text(encoding='utf-8')
        assert "batch started" in main_log
        assert "save endpoint unreachable" in error_log
        assert "batch started" not in error_log

        # Second setup does not stack handlers
        assert len(archiver_logger.setup_logger().handlers) == 3
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)


def test_error_tracking(tmp_path):
    tracker = ErrorTracker(logging.getLogger("wayback_archiver.test"))
    try:
        raise ValueError("Test error for tracking")
    except ValueError as e:
        error_id = tracker.log_error(e, context="checking", url="https://example.com")
    warning_id = tracker.log_warning("slow lookup", url="https://example.com")

    assert error_id.startswith("ERR_")
    assert warning_id.startswith("WARN_")
    summary = tracker.get_error_summary()
    assert summary["total_errors"] == 1
    assert summary["total_warnings"] == 1
    assert summary["error_types"] == {"ValueError": 1}

    report = tmp_path / "errors.txt"
    assert tracker.save_error_report(str(report))
    content = report.read_text(encoding='utf-8')
    assert error_id in content
    assert "Traceback" in content
    assert "slow lookup" in content


class RecordingSleeper:
    def __init__(self):
        self.calls = []

    def sleep(self, seconds, interruptible=True):
        self.calls.append(seconds)
        return True

    def wake(self):
        pass

    def reset(self):
        pass


def snapshot(url, timestamp):
    return {"archived_snapshots": {"closest": {
        "available": True, "status": "200", "timestamp": timestamp,
        "url": f"http://web.archive.org/web/{timestamp}/{url}",
    }}}


class FakeWayback:
    """Availability API that starts knowing only `archived` and learns saved addresses."""

    def __init__(self, archived):
        self.known = dict(archived)
        self.saved = []

    def availability(self, url, params=None, **kwargs):
        response = Mock()
        response.status_code = 200
        address = params["url"]
        if address in self.known:
            response.json.return_value = snapshot(address, self.known[address])
        else:
            response.json.return_value = {"archived_snapshots": {}}
        return response

    def save(self, url, **kwargs):
        address = url[len(SubmissionClient.SAVE_URL):]
        self.saved.append(address)
        self.known[address.replace("%3A", ":").replace("%2F", "/")] = "20240301120000"
        response = Mock()
        response.status_code = 200
        return response


def test_backend_batch_end_to_end():
    wayback = FakeWayback({"https://example.com": "20230615120000"})
    lookup_session, save_session = Mock(), Mock()
    lookup_session.get.side_effect = wayback.availability
    save_session.get.side_effect = wayback.save

    sleeper = RecordingSleeper()
    controller = ArchiveController(
        RunConfig(propagation_delay_secs=8.0, pacing_delay_secs=1.5),
        resolver=ArchiveStatusResolver(session=lookup_session),
        submitter=SubmissionClient(session=save_session),
        sleeper=sleeper,
    )
    events = []
    controller.subscribe_status(events.append)

    report = controller.run_batch("https://example.com\nhttps://news.example.org/today\nhttps://EXAMPLE.com/")

    assert [r.outcome for r in report.results] == [Outcome.ALREADY_ARCHIVED, Outcome.ARCHIVED]
    assert report.results[1].archive_record.source == Source.PRIMARY
    assert wayback.saved == ["https%3A%2F%2Fnews.example.org%2Ftoday"]
    # pacing, then propagation for the saved address
    assert sleeper.calls == [1.5, 8.0]

    rows = report.all_rows()
    assert len(rows) == 3
    assert rows[2].address == "https://EXAMPLE.com/"
    assert rows[2].outcome == Outcome.ALREADY_ARCHIVED

    csv_text = export_results_csv(rows)
    assert csv_text.count("\n") == 4
    assert events[-1].message == "All URLs have been processed!"
    controller.close()


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
