#!/usr/bin/env python3
"""
Tests for address parsing, validation and deduplication (no network).
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

import pytest

from wayback_archiver.core.models import DuplicateEntry
from wayback_archiver.core.url_processor import URLProcessor
from wayback_archiver.utils.validators import (
    InvalidInputError, is_valid_url, normalized_key, sanitize_url, validate_url,
)


@pytest.mark.parametrize("url, expected_valid", [
    ("https://example.com", True),
    ("http://example.com/path?q=1", True),
    ("HTTPS://Example.COM/a#frag", True),
    ("http://localhost:8080/x", True),
    ("example.com", False),
    ("ftp://example.com", False),
    ("not a url", False),
    ("https://", False),
    ("https://exa mple.com", False),
    ("https://example.com:abc/", False),
    ("https://b\u00fccher.de/katalog", True),
    ("https://my_host.example.com/", True),
    ("http://[::1]:8080/status", True),
    ("https://192.168.0.10/", True),
    ("https://example..com/", False),
    ("https://exa%mple.com/", False),
    ("https://[not-an-ip]/", False),
    ("", False),
])
def test_validate_url(url, expected_valid):
    ok, error = validate_url(url)
    assert ok is expected_valid
    assert (error == "") is expected_valid


def test_parse_drops_invalid_lines_and_keeps_order():
    p = URLProcessor()
    text = "https://b.example.com\n\n  not a url  \nhttp://a.example.com/x\r\nftp://c.example.com\n"
    assert p.parse(text) == ["https://b.example.com", "http://a.example.com/x"]


def test_parse_empty_input():
    p = URLProcessor()
    assert p.parse("") == []
    assert p.parse("   \n\n") == []


def test_parse_only_returns_valid_urls():
    p = URLProcessor()
    text = "\n".join(["https://ok.example.com", "javascript:alert(1)", "www.example.com",
                      "http://[bad", "https://ok.example.com/page?x=1#top", "mailto:a@b.c"])
    parsed = p.parse(text)
    assert parsed == ["https://ok.example.com", "https://ok.example.com/page?x=1#top"]
    assert all(is_valid_url(u) for u in parsed)


def test_extract_from_blob_ignores_line_structure():
    p = URLProcessor()
    blob = ('id,link,note\n1,https://example.com/a,"first"\n'
            '2,"http://example.org/b?x=1";other text https://example.net/c done\n'
            'see also example.com/d and ftp://example.com/e')
    assert p.extract_from_blob(blob) == [
        "https://example.com/a",
        "http://example.org/b?x=1",
        "https://example.net/c",
    ]


def test_normalized_key_rules():
    assert normalized_key("https://WWW.Example.com") == "https://example.com/"
    assert normalized_key("https://example.com/") == "https://example.com/"
    assert normalized_key("https://example.com/path?a=1#frag") == "https://example.com/path?a=1"
    assert normalized_key("http://example.com:80/x") == "http://example.com/x"
    assert normalized_key("http://example.com:8080/x") == "http://example.com:8080/x"
    # Scheme is part of the key
    assert normalized_key("http://example.com") != normalized_key("https://example.com")
    # Path case is preserved
    assert normalized_key("https://example.com/A") != normalized_key("https://example.com/a")
    # IPv6 literals keep their brackets
    assert normalized_key("http://[::1]:8080/x") == "http://[::1]:8080/x"
    assert normalized_key("https://[::1]:443") == "https://[::1]/"


def test_normalized_key_is_deterministic():
    url = "https://www.Example.com/x?y=2#z"
    assert normalized_key(url) == normalized_key(url)


def test_deduplicate_first_occurrence_wins():
    p = URLProcessor()
    result = p.deduplicate([
        "https://www.example.com/a",
        "https://example.org",
        "https://EXAMPLE.com/a#section",
        "https://example.org/",
    ])
    assert result.unique == ["https://www.example.com/a", "https://example.org"]
    assert result.duplicates == [
        DuplicateEntry(address="https://EXAMPLE.com/a#section", duplicate_of="https://www.example.com/a"),
        DuplicateEntry(address="https://example.org/", duplicate_of="https://example.org"),
    ]
    assert result.has_duplicates


def test_deduplicate_is_idempotent():
    p = URLProcessor()
    first = p.deduplicate(["https://a.com", "https://www.a.com", "https://b.com", "https://a.com/"])
    second = p.deduplicate(first.unique)
    assert second.unique == first.unique
    assert second.duplicates == []


def test_normalize_and_dedupe_scenario():
    p = URLProcessor()
    parsed = p.parse("https://example.com\nnot a url\nhttps://example.com/")
    assert parsed == ["https://example.com", "https://example.com/"]

    result = p.deduplicate(parsed)
    assert result.unique == ["https://example.com"]
    assert len(result.duplicates) == 1
    assert result.duplicates[0].address == "https://example.com/"
    assert result.duplicates[0].duplicate_of == "https://example.com"


def test_prepare_batch_rejects_empty_input():
    p = URLProcessor()
    with pytest.raises(InvalidInputError):
        p.prepare_batch("nothing useful here\nftp://x.example.com")


def test_sanitize_url():
    assert sanitize_url("https://example.com/a/") == "https://example.com/a"
    assert sanitize_url("https://example.com/") == "https://example.com/"
    assert sanitize_url("https://example.com/a?x=1") == "https://example.com/a?x=1"


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
