"""
CDX API Client for Internet Archive Wayback Machine

This module handles communication with the Internet Archive's CDX Server API
to list the recent captures of a single address.
"""

import requests
from typing import List, Dict, Optional
import logging


USER_AGENT = 'WaybackArchiver/1.0 (Batch Preservation Tool; Archival Use)'


def is_usable_status(status_code: str) -> bool:
    """
    A capture row is usable unless the archived response was an error.
    Revisit records carry '-' instead of a status and are usable.
    """
    status_code = str(status_code or '').strip()
    return not (status_code.startswith('4') or status_code.startswith('5'))


class CDXClient:
    """
    Client for interacting with the Internet Archive CDX Server API.

    The CDX index is a columnar table of captures. It picks up fresh captures
    sooner than the availability endpoint, which makes it useful as a
    fallback right after a save request.
    """

    CDX_BASE_URL = "https://web.archive.org/cdx/search/cdx"

    def __init__(self, timeout: float = 15.0, session: Optional[requests.Session] = None):
        """
        Initialize the CDX client.

        Args:
            timeout: Per-request timeout in seconds
            session: Optional pre-built HTTP session
        """
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': USER_AGENT
        })

    def recent_captures(self, url: str, limit: int = 10) -> List[Dict[str, str]]:
        """
        Get the most recent captures of one address, newest first.

        Args:
            url: The address to look up (exact match)
            limit: Maximum number of captures to return

        Returns:
            List of dictionaries containing capture metadata:
            - 'url': The original URL as captured
            - 'timestamp': The capture timestamp
            - 'status_code': HTTP status code of the capture
            - 'wayback_url': The Wayback Machine URL of the capture

        Raises:
            requests.RequestException: If the CDX API request fails
            ValueError: If the response is not valid CDX JSON
        """
        params = {
            'url': url,
            'output': 'json',
            'fl': 'timestamp,original,statuscode',
            'filter': '!statuscode:5..',
            # Negative limit asks for the last N rows of the index
            'limit': -abs(int(limit)),
        }

        response = self._make_request(params)
        records = self._parse_cdx_response(response.json())
        records.sort(key=lambda rec: rec['timestamp'], reverse=True)
        self.logger.debug(f"CDX returned {len(records)} capture(s) for {url}")
        return records

    def latest_capture(self, url: str, limit: int = 10) -> Optional[Dict[str, str]]:
        """
        Get the most recent usable capture of an address.

        Returns:
            Dictionary with capture metadata, or None if there is none

        Raises:
            requests.RequestException: If the CDX API request fails
            ValueError: If the response is not valid CDX JSON
        """
        for rec in self.recent_captures(url, limit=limit):
            if is_usable_status(rec['status_code']):
                return rec
        return None

    def _make_request(self, params: Dict) -> requests.Response:
        """
        Make a request to the CDX API.

        Args:
            params: Query parameters for the CDX API

        Returns:
            Response object from the API

        Raises:
            requests.RequestException: If the request fails
        """
        self.logger.debug(f"Making CDX API request with params: {params}")

        response = self.session.get(self.CDX_BASE_URL, params=params, timeout=self.timeout)
        response.raise_for_status()

        return response

    def _parse_cdx_response(self, data: List) -> List[Dict[str, str]]:
        """
        Parse the JSON response from the CDX API.

        Args:
            data: Raw JSON data from CDX API

        Returns:
            List of parsed capture records, in index order

        Raises:
            ValueError: If the response format is unexpected
        """
        if not data:
            return []
        if not isinstance(data, list):
            raise ValueError("Unexpected CDX response format: not a table")

        # First row contains column headers
        if len(data) < 2:
            return []

        headers = data[0]
        if len(headers) < 3:
            raise ValueError("Unexpected CDX response format: insufficient columns")

        records = []
        seen_timestamps = set()
        for row in data[1:]:
            if not isinstance(row, list) or len(row) < 3:
                continue  # Skip malformed rows

            timestamp, original_url, status_code = row[:3]
            if timestamp in seen_timestamps:
                continue
            seen_timestamps.add(timestamp)

            records.append({
                'url': original_url,
                'timestamp': timestamp,
                'status_code': status_code,
                'wayback_url': f"https://web.archive.org/web/{timestamp}/{original_url}",
            })

        return records

    def close(self):
        """Close the HTTP session."""
        self.session.close()
