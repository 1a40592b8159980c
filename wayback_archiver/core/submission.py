"""
Save Request Submission

Asks the Wayback Machine to capture an address. The response body is
never read. A request that went out without a transport error counts as
accepted; the capture itself is confirmed later by verification.
"""

import logging
from typing import Optional
from urllib.parse import quote

import requests

from .cdx_client import USER_AGENT
from .models import SubmissionOutcome, save_url_for


class SubmissionClient:
    """
    Sends "preserve this address" requests to the save endpoint.
    """

    SAVE_URL = "https://web.archive.org/save/"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        """
        Args:
            api_key: Optional archive.org key in "access:secret" form; sent
                as a LOW authorization header when present
            timeout: Per-request timeout in seconds
            session: Optional pre-built HTTP session
        """
        self.api_key = api_key or None
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT})

    def set_api_key(self, api_key: Optional[str]):
        self.api_key = api_key or None

    def submit(self, address: str) -> SubmissionOutcome:
        """
        Request a capture of an address.

        Args:
            address: The address to preserve

        Returns:
            SubmissionOutcome; never raises
        """
        manual_url = save_url_for(address)
        request_url = self.SAVE_URL + quote(address, safe='')
        headers = {'Cache-Control': 'no-cache', 'Pragma': 'no-cache'}
        if self.api_key:
            headers['Authorization'] = f"LOW {self.api_key}"

        self.logger.debug(f"Submitting save request: {request_url}")
        try:
            response = self.session.get(request_url, headers=headers, timeout=self.timeout, stream=True)
        except requests.exceptions.Timeout:
            self.logger.warning(f"Timeout while archiving URL: {address}")
            return SubmissionOutcome(
                accepted=False,
                manual_fallback_url=manual_url,
                error='Request timed out. The archiving process took too long.',
                timed_out=True,
            )
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"Error during archiving of {address}: {e}")
            return SubmissionOutcome(accepted=False, manual_fallback_url=manual_url, error=str(e))

        status = getattr(response, 'status_code', None)
        response.close()
        if isinstance(status, int) and status >= 400:
            # Not a transport failure; verification decides what really happened
            self.logger.warning(f"Save endpoint answered HTTP {status} for {address}")
        else:
            self.logger.info(f"Save request dispatched for {address}")

        return SubmissionOutcome(accepted=True, manual_fallback_url=manual_url, status_code=status)

    def close(self):
        """Close the HTTP session."""
        self.session.close()
