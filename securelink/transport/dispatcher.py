"""
Secure Request Dispatcher

Wraps application API calls with channel encryption:

    request body   JSON -> SecureChannel.encrypt -> text/plain envelope
    response body  envelope -> SecureChannel.decrypt -> JSON

Every request carries the client authentication headers and
X-Session-ID. While the channel is not initialized, and only if
plaintext traffic is allowed (development), bodies travel as plain JSON.

Failures:
    non-2xx status            -> HttpError(status)
    DNS/TLS/refused/timeout   -> CertificateOrNetworkError
    undecryptable response    -> SessionExpiredError
"""

import json
import logging
from typing import Any, Callable, Optional

from ..auth.client_auth import ClientAuthenticator
from ..config import ClientConfig
from ..errors import (
    CertificateOrNetworkError,
    HttpError,
    PreconditionError,
    SessionExpiredError,
)
from ..integration.event_logger import EventType, SecurityEventLog
from ..messaging.secure_channel import SecureChannel
from .http import HttpTransport


logger = logging.getLogger(__name__)

HEADER_SESSION_ID = "X-Session-ID"
CONTENT_TYPE_ENCRYPTED = "text/plain"
CONTENT_TYPE_JSON = "application/json"


class SecureRequestDispatcher:
    """
    Sends application requests through the secure channel.

    Example:
        >>> result = await dispatcher.request("/api/auth/login", "POST",
        ...                                   {"username": "alice", "password": pw})
    """

    def __init__(self, config: ClientConfig,
                 channel: SecureChannel,
                 transport: HttpTransport,
                 authenticator: ClientAuthenticator,
                 event_log: Optional[SecurityEventLog] = None,
                 on_certificate_error: Optional[Callable[[CertificateOrNetworkError], None]] = None):
        self._config = config
        self._channel = channel
        self._transport = transport
        self._authenticator = authenticator
        self._event_log = event_log
        self._on_certificate_error = on_certificate_error

    def _record(self, event_type: EventType, **details: Any) -> None:
        if self._event_log is not None:
            self._event_log.record(event_type, self._authenticator.client_id, **details)

    async def request(self, path: str, method: str = "GET", data: Any = None) -> Any:
        """
        Send one request.

        Args:
            path: Path relative to base_url, or an absolute URL
            method: HTTP method
            data: JSON-serializable body (None sends no body)

        Returns:
            Parsed JSON response, {} for an empty body, or the raw text
            if the body is not JSON

        Raises:
            PreconditionError: Non-HTTPS URL outside development, or
                plaintext traffic not allowed
            HttpError: On non-2xx status
            CertificateOrNetworkError: On transport failure
            SessionExpiredError: If the response cannot be decrypted
        """
        url = self._config.url(path)
        if not url.startswith("https://") and not self._config.is_development:
            raise PreconditionError("Secure API calls must use HTTPS")

        encrypted = self._channel.is_initialized()
        if not encrypted:
            if not self._config.allow_plaintext:
                raise PreconditionError(
                    "Security context not initialized. Cannot make secure API call."
                )
            logger.warning("Sending plaintext request to %s (channel not initialized)", url)
            self._record(EventType.PLAINTEXT_REQUEST, url=url, method=method)

        headers = self._authenticator.build_headers()
        headers['Content-Type'] = CONTENT_TYPE_ENCRYPTED if encrypted else CONTENT_TYPE_JSON
        session_id = self._channel.get_session_id()
        if session_id:
            headers[HEADER_SESSION_ID] = session_id

        body = None
        if data is not None:
            payload = json.dumps(data)
            body = self._channel.encrypt(payload) if encrypted else payload

        try:
            response = await self._transport.request(method, url, headers=headers, body=body)
        except CertificateOrNetworkError as e:
            self._record(EventType.TRANSPORT_FAILURE, url=url)
            if self._on_certificate_error is not None:
                try:
                    self._on_certificate_error(e)
                except Exception:
                    logger.exception("Certificate error callback failed")
            raise

        if not response.ok:
            raise HttpError(response.status, url)

        text = response.text
        if not text or not text.strip():
            return {}

        if encrypted:
            try:
                text = self._channel.decrypt(text)
            except SessionExpiredError:
                self._record(EventType.SESSION_EXPIRED, session_id=session_id)
                raise

        try:
            return json.loads(text)
        except ValueError:
            return text

    async def get(self, path: str) -> Any:
        return await self.request(path, "GET")

    async def post(self, path: str, data: Any = None) -> Any:
        return await self.request(path, "POST", data)

    async def put(self, path: str, data: Any = None) -> Any:
        return await self.request(path, "PUT", data)

    async def delete(self, path: str) -> Any:
        return await self.request(path, "DELETE")
