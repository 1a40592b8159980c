"""
URL Validation Utilities

This module provides address validation and comparison-key normalization
for the Wayback Archiver.
"""

import ipaddress
import re
from urllib.parse import urlparse, urlunparse
from typing import Tuple, Optional
import logging


# Characters a URL host can never contain
FORBIDDEN_HOST_CHARS = set(" #%/:<>?@[\\]^|")


class InvalidInputError(ValueError):
    """Raised when an address list or input file cannot be used at all."""


class URLValidator:
    """
    Validates addresses and derives the keys used to compare them.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.scheme_pattern = re.compile(r'^https?://', re.IGNORECASE)

    def validate(self, url: str) -> Tuple[bool, str]:
        """
        Check that a string is an absolute http(s) URL.

        Unlike a browser address bar, a missing scheme is NOT filled in:
        pasted lists are expected to contain full addresses.

        Args:
            url: The candidate address

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not url or not isinstance(url, str):
            return False, "URL cannot be empty"

        url = url.strip()
        if not self.scheme_pattern.match(url):
            return False, "URL must start with http:// or https://"
        if any(ch.isspace() for ch in url):
            return False, "URL must not contain whitespace"

        try:
            parsed = urlparse(url)
            if not parsed.netloc or not parsed.hostname:
                return False, "URL must have a valid domain"

            # Accessing .port raises ValueError on garbage like host:abc
            parsed.port

            if not self._valid_host(parsed.hostname, bracketed='[' in parsed.netloc):
                return False, "Invalid domain format"

            return True, ""

        except ValueError as e:
            return False, f"URL validation error: {str(e)}"

    @staticmethod
    def _valid_host(host: str, bracketed: bool = False) -> bool:
        """IPv6 literals in brackets, otherwise anything IDNA can encode."""
        if bracketed:
            try:
                return ipaddress.ip_address(host).version == 6
            except ValueError:
                return False
        if FORBIDDEN_HOST_CHARS.intersection(host):
            return False
        try:
            host.encode('idna')
        except UnicodeError:
            return False
        return True

    def is_valid(self, url: str) -> bool:
        return self.validate(url)[0]

    def comparison_key(self, url: str) -> str:
        """
        Build the key used to decide whether two addresses are the same page.

        Lower-cases scheme and host, strips a leading ``www.`` and default
        ports, drops the fragment, and keeps path and query. An empty path
        counts as ``/``. Unparseable input falls back to its lower-cased form.
        """
        try:
            parsed = urlparse(url.strip())
            host = (parsed.hostname or "").lower()
            if not host:
                return url.strip().lower()
            if host.startswith("www."):
                host = host[4:]
            if ":" in host:
                host = f"[{host}]"
            port = parsed.port
            if port and not ((parsed.scheme.lower() == "http" and port == 80) or
                             (parsed.scheme.lower() == "https" and port == 443)):
                host = f"{host}:{port}"

            path = parsed.path or "/"
            return urlunparse((parsed.scheme.lower(), host, path, parsed.params, parsed.query, ""))
        except ValueError:
            return url.strip().lower()

    def lookup_form(self, url: str) -> str:
        """
        Prepare an address for an archive lookup: the fragment is removed
        because the archive never stores it.
        """
        try:
            parsed = urlparse(url.strip())
            return urlunparse(parsed._replace(fragment=""))
        except ValueError:
            self.logger.warning(f"Could not normalize {url!r} for lookup, using it as-is")
            return url


_validator_instance: Optional[URLValidator] = None


def get_validator() -> URLValidator:
    """
    Get the global URL validator instance.

    Returns:
        URLValidator instance
    """
    global _validator_instance
    if _validator_instance is None:
        _validator_instance = URLValidator()
    return _validator_instance


def validate_url(url: str) -> Tuple[bool, str]:
    """
    Returns (is_valid, error_message); the message is meant for the operator.
    """
    return get_validator().validate(url)


def is_valid_url(url: str) -> bool:
    return get_validator().is_valid(url)


def normalized_key(url: str) -> str:
    """
    Comparison key for deduplication and archive matching.
    Deterministic; never shown to the operator in place of the address.
    """
    return get_validator().comparison_key(url)


def sanitize_url(url: str) -> str:
    """
    Strip a single trailing slash from a non-root path (display helper).
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    path = parsed.path
    if len(path) > 1 and path.endswith('/'):
        return urlunparse(parsed._replace(path=path[:-1]))
    return url
