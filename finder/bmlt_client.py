"""HTTP client for BMLT meeting directory servers."""
import logging
from typing import Any, List, Optional, Tuple

import requests

from finder.errors import (
    AuthenticationError,
    EndpointNotFoundError,
    MalformedResponseError,
    RequestTimeoutError,
    UpstreamError,
)
from processor.models import DirectoryConfig

logger = logging.getLogger(__name__)


class BMLTDirectoryClient:
    """Client for the BMLT semantic JSON interface."""

    SEARCH_PATH = '/client_interface/json/'

    def __init__(self, session: Optional[requests.Session] = None):
        """
        Initialize the directory client.

        Args:
            session: Optional requests session (a new one is created if omitted)
        """
        self.session = session or requests.Session()

    def fetch_records(
        self,
        config: DirectoryConfig,
        params: List[Tuple[str, str]]
    ) -> Any:
        """
        Perform one search request against the directory.

        Args:
            config: Directory connection settings
            params: Encoded query parameters

        Returns:
            Parsed JSON body

        Raises:
            AuthenticationError: On HTTP 401/403
            EndpointNotFoundError: On HTTP 404
            UpstreamError: On other non-2xx statuses or connection failures
            RequestTimeoutError: If the request exceeds config.timeout
            MalformedResponseError: If a 2xx body is not JSON
        """
        url = self.build_url(config.api_root)
        headers = {
            'Accept': 'application/json',
            'User-Agent': config.user_agent,
        }
        if config.api_key:
            headers['Authorization'] = f"Bearer {config.api_key}"

        try:
            logger.info(f"Requesting meetings from {url}")
            response = self.session.get(
                url,
                params=params,
                headers=headers,
                timeout=config.timeout
            )
        except requests.Timeout as e:
            raise RequestTimeoutError(
                f"Directory request timed out after {config.timeout} seconds"
            ) from e
        except requests.RequestException as e:
            raise UpstreamError(f"Network error: {e}") from e

        self._raise_for_status(response)

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                "Invalid JSON response from directory",
                status_code=response.status_code
            ) from e

    def build_url(self, api_root: str) -> str:
        return f"{api_root.rstrip('/')}{self.SEARCH_PATH}"

    def _raise_for_status(self, response: requests.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return

        if status in (401, 403):
            raise AuthenticationError(
                "Directory authentication failed. Check the API key.",
                status_code=status
            )
        if status == 404:
            raise EndpointNotFoundError(
                "Directory endpoint not found. Check the API root URL.",
                status_code=status
            )
        raise UpstreamError(
            f"Directory error: {status} {response.reason}",
            status_code=status
        )

    def close(self) -> None:
        self.session.close()
