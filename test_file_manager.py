#!/usr/bin/env python3
"""
Tests for address file loading and CSV export.
"""

import csv
import io
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

import pytest

from wayback_archiver.core.models import ArchiveRecord, Outcome, ProcessingResult, Source
from wayback_archiver.utils.file_manager import (CSV_HEADER, MAX_INPUT_FILE_BYTES, export_results_csv,
                                                 read_url_file, save_results_csv, validate_input_file)
from wayback_archiver.utils.validators import InvalidInputError


def archived(address):
    record = ArchiveRecord(is_archived=True, source=Source.PRIMARY,
                           snapshot_url=f"https://web.archive.org/web/20230615120000/{address}",
                           snapshot_timestamp="20230615120000")
    return ProcessingResult(address=address, outcome=Outcome.ALREADY_ARCHIVED, archive_record=record,
                            details=["Already archived"])


def test_export_quotes_and_escapes():
    results = [
        archived("https://example.com/a,b"),
        ProcessingResult(address="https://example.com/q", outcome=Outcome.ERROR,
                         details=['Error: bad "gateway"', "retry, later"]),
    ]
    text = export_results_csv(results)

    lines = text.splitlines()
    assert lines[0] == "URL,Status,Archive URL,Archive Date,Details"
    assert lines[1].startswith('"https://example.com/a,b",Already archived,')
    assert lines[2] == 'https://example.com/q,Error,,,"Error: bad ""gateway"" retry, later"'

    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == CSV_HEADER
    assert rows[1][3] == "2023-06-15 12:00:00"
    assert rows[2][4] == 'Error: bad "gateway" retry, later'


def test_export_without_results_is_empty():
    assert export_results_csv([]) == ''


def test_save_results_csv(tmp_path):
    target = tmp_path / "out" / "results.csv"
    path = save_results_csv([archived("https://example.com")], str(target))

    assert path == str(target)
    assert target.read_text(encoding='utf-8').startswith("URL,Status")
    assert save_results_csv([], str(tmp_path / "empty.csv")) is None
    assert not (tmp_path / "empty.csv").exists()


def test_read_url_file_from_csv(tmp_path):
    source = tmp_path / "urls.csv"
    source.write_text('name,link\nhome,https://example.com\nnotes,"see https://example.org/page; ok"\n'
                      'bad,http://\n', encoding='utf-8')

    assert read_url_file(str(source)) == ["https://example.com", "https://example.org/page"]


def test_read_url_file_rejects_wrong_type(tmp_path):
    source = tmp_path / "urls.json"
    source.write_text('["https://example.com"]', encoding='utf-8')

    with pytest.raises(InvalidInputError, match="Invalid file type"):
        read_url_file(str(source))


def test_read_url_file_rejects_missing(tmp_path):
    with pytest.raises(InvalidInputError):
        read_url_file(str(tmp_path / "nope.txt"))


def test_validate_input_file_size_limit(tmp_path):
    big = tmp_path / "big.txt"
    with open(big, 'wb') as f:
        f.truncate(MAX_INPUT_FILE_BYTES + 1)

    ok, error = validate_input_file(str(big))
    assert not ok
    assert "too large" in error

    small = tmp_path / "small.TXT"
    small.write_text("https://example.com\n", encoding='utf-8')
    assert validate_input_file(str(small)) == (True, "")


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
