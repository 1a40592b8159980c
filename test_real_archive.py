#!/usr/bin/env python3
"""
Real Archive Testing Script

Runs lookups against the live Wayback Machine. Only read-only endpoints
are used; nothing is submitted for capture.

Skipped unless WAYBACK_LIVE=1 is set:

    WAYBACK_LIVE=1 python -m pytest test_real_archive.py -v
"""

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

import pytest

from wayback_archiver.core.logger import initialize_logging, get_logger
from wayback_archiver.core.models import Source
from wayback_archiver.core.status_resolver import ArchiveStatusResolver, SECONDARY_CDX


pytestmark = pytest.mark.skipif(os.environ.get("WAYBACK_LIVE") != "1",
                                reason="live Wayback Machine test; set WAYBACK_LIVE=1")

# Long-lived page with thousands of captures
KNOWN_URL = "https://example.com/"


@pytest.fixture(scope="module")
def resolver(tmp_path_factory):
    initialize_logging(log_dir=str(tmp_path_factory.mktemp("logs")))
    resolver = ArchiveStatusResolver(timeout=30.0)
    yield resolver
    resolver.close()


def test_known_url_is_archived(resolver):
    logger = get_logger('real_archive_test')
    record = resolver.resolve(KNOWN_URL)
    logger.info(f"{KNOWN_URL}: archived={record.is_archived} via {record.source.value} ({record.formatted_date})")

    assert record.is_archived, record.error
    assert record.snapshot_url.startswith("http")
    assert len(record.snapshot_timestamp) == 14


def test_cdx_secondary_lookup():
    resolver = ArchiveStatusResolver(timeout=30.0, secondary_source=SECONDARY_CDX)
    try:
        record = resolver.check_secondary(KNOWN_URL)
    finally:
        resolver.close()
    assert record.is_archived, record.error
    assert record.source == Source.SECONDARY


def test_archive_history(resolver):
    captures = resolver.get_archive_history(KNOWN_URL, limit=5)
    assert captures
    timestamps = [c["timestamp"] for c in captures]
    assert timestamps == sorted(timestamps, reverse=True)
    assert all(c["formatted_date"] != "Unknown date" for c in captures)


if __name__ == "__main__":
    os.environ.setdefault("WAYBACK_LIVE", "1")
    sys.exit(pytest.main([__file__, "-v"]))
