"""
SecureLink Client

The surface the rest of the application depends on:

    await perform_key_exchange() -> {'success': ..., 'session_id' | 'error': ...}
    is_initialized()             -> bool
    get_session_id()             -> str | None
    encrypt(plaintext)           -> str
    decrypt(envelope)            -> str

plus `request()` for encrypted API calls. One SecureClient owns one
SecureChannel; pass the client around instead of sharing module state.
"""

import logging
from typing import Any, Callable, Dict, Optional

import requests

from .auth.client_auth import ClientAuthenticator
from .config import ClientConfig
from .errors import CertificateOrNetworkError
from .handshake.key_exchange import HandshakeState, KeyExchangeInitiator
from .integration.event_logger import EventType, SecurityEventLog
from .messaging.secure_channel import SecureChannel
from .transport.dispatcher import SecureRequestDispatcher
from .transport.http import HttpTransport


logger = logging.getLogger(__name__)


class SecureClient:
    """
    Secure-channel client for one backend.

    Example:
        client = SecureClient(ClientConfig.from_env())
        result = await client.perform_key_exchange()
        if result['success']:
            profile = await client.request("/api/users/profile", "GET")
    """

    def __init__(self, config: ClientConfig = None,
                 session: requests.Session = None,
                 event_log: SecurityEventLog = None,
                 on_certificate_error: Optional[Callable[[CertificateOrNetworkError], None]] = None):
        """
        Args:
            config: Client settings (defaults to ClientConfig())
            session: requests session for the transport
            event_log: Security event log (a new one if None)
            on_certificate_error: Called with the error whenever the
                backend is unreachable at transport level
        """
        self._config = config or ClientConfig()
        self._event_log = event_log if event_log is not None else SecurityEventLog()
        self._channel = SecureChannel()
        self._transport = HttpTransport(
            session=session,
            timeout=self._config.request_timeout,
            verify=self._config.verify_tls,
        )
        self._authenticator = ClientAuthenticator(
            client_id=self._config.client_id,
            auth_key=self._config.auth_key,
            origin=self._config.origin,
        )
        self._initiator = KeyExchangeInitiator(
            self._config, self._channel, self._transport, self._authenticator,
            event_log=self._event_log, on_certificate_error=on_certificate_error,
        )
        self._dispatcher = SecureRequestDispatcher(
            self._config, self._channel, self._transport, self._authenticator,
            event_log=self._event_log, on_certificate_error=on_certificate_error,
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def event_log(self) -> SecurityEventLog:
        return self._event_log

    @property
    def handshake_state(self) -> HandshakeState:
        return self._initiator.state

    async def perform_key_exchange(self) -> Dict[str, Any]:
        """Run the ECDH handshake; see KeyExchangeInitiator."""
        return await self._initiator.perform_key_exchange()

    def is_initialized(self) -> bool:
        return self._channel.is_initialized()

    def get_session_id(self) -> Optional[str]:
        return self._channel.get_session_id()

    def encrypt(self, plaintext: str) -> str:
        return self._channel.encrypt(plaintext)

    def decrypt(self, envelope: str) -> str:
        return self._channel.decrypt(envelope)

    async def request(self, path: str, method: str = "GET", data: Any = None) -> Any:
        """Encrypted API call; see SecureRequestDispatcher.request."""
        return await self._dispatcher.request(path, method, data)

    def clear_security_context(self) -> None:
        """Forget the current session. A new handshake is required."""
        session_id = self._channel.get_session_id()
        self._channel.clear()
        self._event_log.record(EventType.CONTEXT_CLEARED, self._config.client_id,
                               session_id=session_id)

    def close(self) -> None:
        self._transport.close()
