"""
HTTP Transport

Asynchronous wrapper over a requests.Session.

Blocking requests calls run in a worker thread (asyncio.to_thread) so
the event loop is never blocked. Every transport-level failure (DNS,
TLS, refused connection, timeout) is raised as
CertificateOrNetworkError; HTTP error statuses are returned, not raised.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests

from ..config import DEFAULT_REQUEST_TIMEOUT
from ..errors import CertificateOrNetworkError


logger = logging.getLogger(__name__)


@dataclass
class HttpResponse:
    """Status and body of a completed HTTP exchange."""
    status: int
    text: str
    url: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """
        Raises:
            ValueError: If the body is not JSON
        """
        return json.loads(self.text)


class HttpTransport:
    """
    Sends HTTP requests through requests without blocking the caller.

    Example:
        transport = HttpTransport(timeout=5.0)
        response = await transport.request("GET", url, headers=headers)
    """

    def __init__(self, session: requests.Session = None,
                 timeout: float = DEFAULT_REQUEST_TIMEOUT,
                 verify: Union[bool, str] = True):
        """
        Args:
            session: Session to use (a new one is created if None)
            timeout: Per-request timeout in seconds
            verify: TLS verification flag or CA bundle path
        """
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout
        self._verify = verify

    async def request(self, method: str, url: str,
                      headers: Optional[Dict[str, str]] = None,
                      body: Optional[str] = None) -> HttpResponse:
        """
        Send a request.

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Request headers
            body: Request body (UTF-8 encoded before sending)

        Returns:
            HttpResponse for any status code

        Raises:
            CertificateOrNetworkError: On transport-level failure
        """
        return await asyncio.to_thread(self._request_sync, method, url, headers, body)

    def _request_sync(self, method: str, url: str,
                      headers: Optional[Dict[str, str]],
                      body: Optional[str]) -> HttpResponse:
        data = body.encode("utf-8") if body is not None else None
        logger.debug("%s %s", method, url)
        try:
            response = self._session.request(
                method,
                url,
                headers=headers or {},
                data=data,
                timeout=self._timeout,
                verify=self._verify,
            )
        except requests.exceptions.RequestException as e:
            logger.warning("Transport failure for %s %s: %s", method, url, e)
            raise CertificateOrNetworkError(url, e) from e

        logger.debug("%s %s -> %d", method, url, response.status_code)
        return HttpResponse(status=response.status_code, text=response.text, url=url)

    def close(self) -> None:
        self._session.close()
