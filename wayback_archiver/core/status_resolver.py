"""
Archive Status Resolution

Answers "is this address already in the Wayback Machine?" using the
availability API first and a recency-biased secondary lookup second.
The availability API is known to lag behind fresh captures, so the
secondary lookup exists to cut false negatives right after a save.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import requests

from wayback_archiver.utils.validators import get_validator
from .cdx_client import CDXClient, USER_AGENT, is_usable_status
from .models import ArchiveRecord, Source, check_url_for, format_timestamp


SECONDARY_AVAILABILITY = "availability"
SECONDARY_CDX = "cdx"


class ArchiveStatusResolver:
    """
    Resolves the archive status of a single address.

    resolve() never raises: timeouts, transport errors and malformed
    responses are folded into a not-archived ArchiveRecord.
    """

    AVAILABILITY_URL = "https://archive.org/wayback/available"

    def __init__(self,
                 timeout: float = 15.0,
                 secondary_source: str = SECONDARY_AVAILABILITY,
                 normalize_urls: bool = True,
                 session: Optional[requests.Session] = None,
                 cdx_client: Optional[CDXClient] = None,
                 now: Optional[Callable[[], datetime]] = None):
        """
        Args:
            timeout: Per-request timeout in seconds
            secondary_source: "availability" (timestamp-biased availability
                query) or "cdx" (columnar index lookup)
            normalize_urls: Strip fragments before lookups
            session: Optional pre-built HTTP session
            cdx_client: Optional CDX client (built on the same session if omitted)
            now: Clock used to bias the secondary lookup toward recent captures
        """
        if secondary_source not in (SECONDARY_AVAILABILITY, SECONDARY_CDX):
            raise ValueError(f"Unknown secondary source: {secondary_source}")
        self.timeout = timeout
        self.secondary_source = secondary_source
        self.normalize_urls = normalize_urls
        self.logger = logging.getLogger(__name__)
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT})
        self.cdx = cdx_client or CDXClient(timeout=timeout, session=self.session)
        self._now = now or (lambda: datetime.now(timezone.utc))

    def resolve(self, address: str) -> ArchiveRecord:
        """
        Determine whether an address already has a snapshot.

        Args:
            address: The address to check

        Returns:
            ArchiveRecord; source is PRIMARY or SECONDARY depending on which
            lookup found the snapshot (SECONDARY when neither did)
        """
        primary = self.check_primary(address)
        if primary.is_archived:
            return primary

        if primary.error:
            self.logger.warning(f"Primary lookup failed for {address}: {primary.error}")

        secondary = self.check_secondary(address)
        if secondary.is_archived:
            return secondary

        return ArchiveRecord(
            is_archived=False,
            source=Source.SECONDARY,
            error=secondary.error or primary.error,
            timed_out=primary.timed_out or secondary.timed_out,
            check_url=check_url_for(address),
        )

    def check_primary(self, address: str) -> ArchiveRecord:
        """Most-recent-snapshot lookup on the availability API."""
        return self._guarded(address, Source.PRIMARY, lambda: self._availability_record(address, None))

    def check_secondary(self, address: str) -> ArchiveRecord:
        """Lookup biased toward captures made moments ago."""
        if self.secondary_source == SECONDARY_CDX:
            return self._guarded(address, Source.SECONDARY, lambda: self._cdx_record(address))
        stamp = self._now().strftime('%Y%m%d%H%M%S')
        return self._guarded(address, Source.SECONDARY, lambda: self._availability_record(address, stamp))

    def get_archive_history(self, address: str, limit: int = 10) -> List[Dict[str, str]]:
        """
        Recent usable captures of an address, newest first.

        Raises:
            requests.RequestException: If the CDX API request fails
            ValueError: If the response is not valid CDX JSON
        """
        captures = []
        for rec in self.cdx.recent_captures(self._lookup_form(address), limit=limit):
            if not is_usable_status(rec['status_code']):
                continue
            captures.append(dict(rec, formatted_date=format_timestamp(rec['timestamp'])))
        return captures

    def find_in_history(self, address: str, limit: int = 10) -> ArchiveRecord:
        """
        History lookup used once verification has given up. Never raises.

        Always queries a source that resolve() did not use: the CDX capture
        list normally, or the recency-biased availability query when CDX is
        already the secondary lookup.
        """
        if self.secondary_source == SECONDARY_CDX:
            stamp = self._now().strftime('%Y%m%d%H%M%S')
            return self._guarded(address, Source.HISTORY, lambda: self._availability_record(address, stamp))

        def lookup():
            captures = self.get_archive_history(address, limit=limit)
            if not captures:
                return None, None
            return captures[0]['wayback_url'], captures[0]['timestamp']

        return self._guarded(address, Source.HISTORY, lookup)

    def _guarded(self, address: str, source: Source, lookup) -> ArchiveRecord:
        check_url = check_url_for(address)
        try:
            snapshot_url, timestamp = lookup()
        except requests.exceptions.Timeout:
            self.logger.warning(f"Timeout while checking {address} via {source.value} lookup")
            return ArchiveRecord(
                is_archived=False,
                source=source,
                error='Request timed out. The Wayback Machine API is responding slowly.',
                timed_out=True,
                check_url=check_url,
            )
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"Request error while checking {address} via {source.value} lookup: {e}")
            return ArchiveRecord(is_archived=False, source=source, error=str(e), check_url=check_url)
        except ValueError as e:
            self.logger.warning(f"Invalid response while checking {address} via {source.value} lookup: {e}")
            return ArchiveRecord(is_archived=False, source=source,
                                 error=f"Invalid response: {e}", check_url=check_url)

        if snapshot_url and timestamp:
            self.logger.debug(f"Found snapshot {timestamp} for {address} via {source.value} lookup")
            return ArchiveRecord(
                is_archived=True,
                source=source,
                snapshot_url=snapshot_url,
                snapshot_timestamp=timestamp,
            )
        return ArchiveRecord(is_archived=False, source=source, check_url=check_url)

    def _availability_record(self, address: str, timestamp: Optional[str]):
        params = {'url': self._lookup_form(address)}
        if timestamp:
            params['timestamp'] = timestamp

        self.logger.debug(f"Availability API request with params: {params}")
        response = self.session.get(
            self.AVAILABILITY_URL,
            params=params,
            headers={'Cache-Control': 'no-cache', 'Pragma': 'no-cache'},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        closest = self._closest_snapshot(data)
        if closest is None:
            return None, None
        return closest.get('url'), closest.get('timestamp')

    def _cdx_record(self, address: str):
        rec = self.cdx.latest_capture(self._lookup_form(address))
        if rec is None:
            return None, None
        return rec['wayback_url'], rec['timestamp']

    @staticmethod
    def _closest_snapshot(data) -> Optional[dict]:
        """Return the nested snapshot descriptor when it reports availability."""
        if not isinstance(data, dict):
            raise ValueError("availability response is not an object")
        snapshots = data.get('archived_snapshots') or {}
        closest = snapshots.get('closest') if isinstance(snapshots, dict) else None
        if isinstance(closest, dict) and closest.get('available') is True:
            return closest
        return None

    def _lookup_form(self, address: str) -> str:
        if not self.normalize_urls:
            return address
        return get_validator().lookup_form(address)

    def close(self):
        """Close the HTTP session."""
        self.session.close()
