"""
Address Parsing and Deduplication

Turns pasted text or raw file content into a clean, ordered list of
addresses and splits off repeats before any request is made.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Iterable

from wayback_archiver.utils.validators import InvalidInputError, is_valid_url, normalized_key
from .models import DuplicateEntry


# Anything that looks like an http(s) URL inside CSV or free text
URL_IN_TEXT = re.compile(r'https?://[^\s,;"\']+', re.IGNORECASE)


@dataclass
class DeduplicationResult:
    unique: List[str] = field(default_factory=list)
    duplicates: List[DuplicateEntry] = field(default_factory=list)

    @property
    def has_duplicates(self) -> bool:
        return bool(self.duplicates)


class URLProcessor:
    """
    Parses, validates and deduplicates addresses.

    All methods are pure with respect to their input; the processor keeps
    no state between calls.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def parse(self, raw_text: str) -> List[str]:
        """
        Split text on line boundaries and keep the lines that are valid
        absolute http(s) URLs. Invalid lines are dropped silently.

        Args:
            raw_text: Text containing one address per line

        Returns:
            Addresses in input order
        """
        if not raw_text or not raw_text.strip():
            return []

        addresses = []
        dropped = 0
        for line in raw_text.splitlines():
            line = line.strip()
            if not line:
                continue
            if is_valid_url(line):
                addresses.append(line)
            else:
                dropped += 1

        if dropped:
            self.logger.debug(f"Dropped {dropped} invalid line(s) while parsing input")
        return addresses

    def extract_from_blob(self, text: str) -> List[str]:
        """
        Pull URL-shaped substrings out of unstructured content (CSV cells,
        prose) regardless of line structure, then apply the same validity
        check as parse().
        """
        if not text:
            return []
        found = URL_IN_TEXT.findall(text)
        addresses = [u for u in found if is_valid_url(u)]
        self.logger.debug(f"Extracted {len(addresses)} of {len(found)} URL-shaped strings")
        return addresses

    def deduplicate(self, addresses: Iterable[str]) -> DeduplicationResult:
        """
        Group addresses by comparison key. The first occurrence wins and keeps
        its position; later occurrences are reported as duplicates of it.
        """
        result = DeduplicationResult()
        seen = {}
        for address in addresses:
            key = normalized_key(address)
            if key in seen:
                result.duplicates.append(DuplicateEntry(address=address, duplicate_of=seen[key]))
            else:
                seen[key] = address
                result.unique.append(address)

        if result.duplicates:
            self.logger.info(f"Found {len(result.duplicates)} duplicate URLs that will be processed only once")
        return result

    def prepare_batch(self, raw_text: str) -> DeduplicationResult:
        """
        parse() + deduplicate() for a batch start.

        Raises:
            InvalidInputError: If no valid address remains
        """
        addresses = self.parse(raw_text)
        if not addresses:
            raise InvalidInputError("No valid URLs found.")
        return self.deduplicate(addresses)
