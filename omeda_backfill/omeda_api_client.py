"""
Omeda Public API Client

Minimal client for the Omeda "matches since" endpoint:

    GET <base_url>/<epoch>  ->  JSON array of match objects

One call issues one request. Errors are translated into the typed
FetchError hierarchy so callers never handle requests exceptions directly.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import MalformedResponseError, RemoteError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://backend.production.omeda-aws.com/api/public/get-matches-since"


class OmedaApiClient:
    """Client for the Omeda public matches API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = 30,
        max_retries: int = 0
    ):
        """
        Initialize the Omeda API client.

        Args:
            base_url: URL of the get-matches-since endpoint
            timeout: Request timeout in seconds (default: 30)
            max_retries: Transport-level retries per request (default: 0, one call is one request)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        self.session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
            raise_on_status=False
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)
        self.session.headers.update({'Accept': 'application/json'})

    def get_matches_since(self, epoch: int) -> List[Dict[str, Any]]:
        """
        Get the page of matches that ended after ``epoch``.

        Args:
            epoch: Unix epoch lower bound

        Returns:
            List of match dicts in API order; empty when nothing is newer

        Raises:
            RemoteError: Non-2xx status or transport failure
            MalformedResponseError: 2xx body is not a JSON array of objects
        """
        url = f"{self.base_url}/{epoch}"

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"Request for epoch {epoch} failed: {e}", epoch=epoch) from e

        if not response.ok:
            raise RemoteError(
                f"Error getting matches for epoch {epoch}: HTTP {response.status_code}",
                epoch=epoch,
                status_code=response.status_code
            )

        try:
            matches = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response for epoch {epoch} is not valid JSON: {e}", epoch=epoch) from e

        if not isinstance(matches, list):
            raise MalformedResponseError(
                f"Response for epoch {epoch} is a {type(matches).__name__}, expected a list",
                epoch=epoch
            )
        for index, match in enumerate(matches):
            if not isinstance(match, dict):
                raise MalformedResponseError(
                    f"Item {index} of response for epoch {epoch} is a {type(match).__name__}, expected an object",
                    epoch=epoch
                )

        logger.debug(f"Fetched {len(matches)} matches since {epoch}")
        return matches

    def health_check(self, epoch: Optional[int] = None) -> bool:
        """Check if the API answers for the given epoch (defaults to 0)."""
        try:
            self.get_matches_since(epoch if epoch is not None else 0)
            return True
        except (RemoteError, MalformedResponseError) as e:
            logger.error(f"Health check failed: {e}")
            return False

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
