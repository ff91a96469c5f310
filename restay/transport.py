"""
HTTP transport for governed requests.

Wraps a requests.Session; blocking calls run in a worker thread so the
event loop stays free while a request is on the wire.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from config.settings import settings
from restay.exceptions import TransportError

logger = logging.getLogger("transport")

DEFAULT_HEADERS = {"Content-Type": "application/json"}


class HttpTransport:
    """JSON-over-HTTP client used as the governor's network collaborator."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = settings.request_timeout_seconds,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
    ) -> Any:
        """
        Perform a request and decode the JSON response.

        Args:
            url: Absolute URL
            method: HTTP method
            params: Query parameters
            headers: Extra headers, merged over the JSON defaults
            body: JSON-serializable request body

        Returns:
            Decoded response body (None for empty responses)

        Raises:
            TransportError: On connection errors or non-2xx status codes
        """
        return await asyncio.to_thread(self._send, url, method, params, headers, body)

    def _send(
        self,
        url: str,
        method: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
        body: Optional[Any],
    ) -> Any:
        merged_headers = {**DEFAULT_HEADERS, **(headers or {})}
        try:
            response = self._session.request(
                method.upper(),
                url,
                params=params,
                headers=merged_headers,
                json=body,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error(f"API request failed: {method.upper()} {url}: {e}")
            raise TransportError(f"Request to {url} failed: {e}") from e

        if not response.ok:
            logger.error(f"API request failed: {method.upper()} {url} -> {response.status_code}")
            raise TransportError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {url}", status_code=response.status_code) from e

    def close(self) -> None:
        self._session.close()
