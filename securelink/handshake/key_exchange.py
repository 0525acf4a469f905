"""
Key Exchange Module

Client side of the authenticated ECDH handshake:

    1. Generate an ephemeral P-256 key pair
    2. Build authentication headers (client id, timestamp, signature, origin)
    3. GET  /api/security/initiate-handshake  -> {sessionId, serverPublicKey}
    4. Import the server public key (base64 SPKI)
    5. Export the local public key (base64 SPKI)
    6. POST /api/security/complete-handshake  <- {sessionId, clientPublicKey}
    7. ECDH shared secret -> session key -> SecureChannel

States:
    IDLE -> HANDSHAKE_REQUESTED -> HANDSHAKE_COMPLETED -> SECRET_DERIVED -> READY
    any state -> FAILED

If step 3 cannot reach the server at all, one unauthenticated probe
request is sent to exercise the network path (its response is ignored),
then the original failure is raised wrapped in HandshakeTransportError.

The handshake returns a result dict instead of raising, so callers can
decide whether to retry. There are no implicit retries.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from ..auth.client_auth import ClientAuthenticator
from ..config import ClientConfig
from ..errors import (
    CertificateOrNetworkError,
    HandshakeCompletionError,
    HandshakeError,
    HandshakeTransportError,
    SecureLinkError,
)
from ..integration.event_logger import EventType, SecurityEventLog
from ..messaging.secure_channel import ECDHKeyExchange, SecureChannel, import_public_key
from ..transport.http import HttpResponse, HttpTransport


logger = logging.getLogger(__name__)

INITIATE_PATH = "/api/security/initiate-handshake"
COMPLETE_PATH = "/api/security/complete-handshake"


class HandshakeState(Enum):
    """Handshake protocol states."""
    IDLE = "idle"
    HANDSHAKE_REQUESTED = "handshake_requested"
    HANDSHAKE_COMPLETED = "handshake_completed"
    SECRET_DERIVED = "secret_derived"
    READY = "ready"
    FAILED = "failed"


class KeyExchangeInitiator:
    """
    Runs the handshake and installs the resulting session in a channel.

    Concurrent calls are serialized; a handshake never overwrites the
    session of one that finished after it started.

    Example:
        >>> initiator = KeyExchangeInitiator(config, channel, transport, auth)
        >>> result = await initiator.perform_key_exchange()
        >>> if result['success']:
        ...     session_id = result['session_id']
    """

    def __init__(self, config: ClientConfig,
                 channel: SecureChannel,
                 transport: HttpTransport,
                 authenticator: ClientAuthenticator,
                 event_log: Optional[SecurityEventLog] = None,
                 on_certificate_error: Optional[Callable[[CertificateOrNetworkError], None]] = None):
        """
        Args:
            config: Client settings
            channel: Channel that receives the established session
            transport: HTTP transport
            authenticator: Builds the auth headers
            event_log: Optional security event log
            on_certificate_error: Called when the server is unreachable
        """
        self._config = config
        self._channel = channel
        self._transport = transport
        self._authenticator = authenticator
        self._event_log = event_log
        self._on_certificate_error = on_certificate_error
        self._state = HandshakeState.IDLE
        self._lock = asyncio.Lock()

    @property
    def state(self) -> HandshakeState:
        return self._state

    def _set_state(self, state: HandshakeState) -> None:
        if state is not self._state:
            logger.debug("Handshake state %s -> %s", self._state.value, state.value)
        self._state = state

    def _record(self, event_type: EventType, **details: Any) -> None:
        if self._event_log is not None:
            self._event_log.record(event_type, self._authenticator.client_id, **details)

    async def perform_key_exchange(self) -> Dict[str, Any]:
        """
        Run one handshake.

        Returns:
            Dict with 'success' and either 'session_id' and 'message', or
            'error', 'error_type' and optionally 'requires_cert_acceptance'

        Raises:
            asyncio.CancelledError: If the caller cancels; no session is
                installed and the state returns to IDLE
        """
        async with self._lock:
            logger.info("Starting ECDH key exchange with %s", self._config.base_url)
            self._record(EventType.HANDSHAKE_STARTED, base_url=self._config.base_url)
            try:
                return await asyncio.wait_for(
                    self._run(), timeout=self._config.handshake_timeout
                )
            except asyncio.CancelledError:
                self._set_state(HandshakeState.IDLE)
                raise
            except asyncio.TimeoutError:
                return self._failure(HandshakeError(
                    f"Handshake timed out after {self._config.handshake_timeout}s"
                ))
            except SecureLinkError as e:
                return self._failure(e)

    async def _run(self) -> Dict[str, Any]:
        self._set_state(HandshakeState.IDLE)
        exchange = ECDHKeyExchange()

        self._set_state(HandshakeState.HANDSHAKE_REQUESTED)
        response = await self._initiate()
        session_id, server_key_b64 = self._parse_initiate_response(response)
        logger.info("Received session ID: %s", session_id)

        server_public_key = import_public_key(server_key_b64)
        client_public_key = exchange.public_spki_base64()

        await self._complete(session_id, client_public_key)
        self._set_state(HandshakeState.HANDSHAKE_COMPLETED)

        try:
            shared_secret = exchange.derive_shared_secret(server_public_key)
        except ValueError as e:
            raise HandshakeError(f"ECDH derivation failed: {e}") from e
        self._set_state(HandshakeState.SECRET_DERIVED)

        self._channel.establish(session_id, shared_secret)
        self._set_state(HandshakeState.READY)

        logger.info("ECDH key exchange completed for session %s", session_id)
        self._record(EventType.HANDSHAKE_COMPLETED, session_id=session_id)
        return {
            'success': True,
            'session_id': session_id,
            'message': 'Key exchange completed',
        }

    async def _initiate(self) -> HttpResponse:
        url = self._config.url(INITIATE_PATH)
        headers = self._authenticator.build_headers()
        try:
            response = await self._transport.request("GET", url, headers=headers)
        except CertificateOrNetworkError as e:
            composite = await self._probe(url, e)
            raise composite from e

        logger.debug("Handshake response status: %d", response.status)
        if not response.ok:
            raise HandshakeError(f"Server handshake failed: {response.status}")
        return response

    async def _probe(self, url: str,
                     original: CertificateOrNetworkError) -> HandshakeTransportError:
        """
        Send one unauthenticated request to exercise the network path.

        The response is never read. Whatever happens, the original
        failure is returned wrapped for the caller to raise.
        """
        if not self._config.probe_on_transport_failure:
            return HandshakeTransportError(original)

        logger.warning("Handshake request failed, probing %s", url)
        probe_error = None
        try:
            await self._transport.request("GET", url)
        except CertificateOrNetworkError as e:
            probe_error = e
        logger.warning("Probe %s", "failed" if probe_error else "reached the server")
        return HandshakeTransportError(original, probe_error=probe_error,
                                       probe_attempted=True)

    @staticmethod
    def _parse_initiate_response(response: HttpResponse) -> Tuple[str, str]:
        try:
            data = response.json()
        except ValueError as e:
            raise HandshakeError("Invalid response format from server") from e

        if not isinstance(data, dict):
            raise HandshakeError("Invalid response format from server")
        session_id = data.get('sessionId')
        server_public_key = data.get('serverPublicKey')
        if not isinstance(session_id, str) or not session_id:
            raise HandshakeError("Server response is missing sessionId")
        if not isinstance(server_public_key, str) or not server_public_key:
            raise HandshakeError("Server response is missing serverPublicKey")
        return session_id, server_public_key

    async def _complete(self, session_id: str, client_public_key: str) -> None:
        url = self._config.url(COMPLETE_PATH)
        headers = self._authenticator.build_headers()
        headers['Content-Type'] = 'application/json'
        body = json.dumps({
            'sessionId': session_id,
            'clientPublicKey': client_public_key,
        })
        response = await self._transport.request("POST", url, headers=headers, body=body)
        if not response.ok:
            raise HandshakeCompletionError(response.status)

    def _failure(self, error: SecureLinkError) -> Dict[str, Any]:
        self._set_state(HandshakeState.FAILED)
        logger.warning("ECDH key exchange failed: %s", error)
        self._record(EventType.HANDSHAKE_FAILED, error_type=type(error).__name__)

        result = {
            'success': False,
            'error': str(error),
            'error_type': type(error).__name__,
        }
        if isinstance(error, CertificateOrNetworkError):
            self._record(EventType.TRANSPORT_FAILURE, url=error.url)
            if self._config.allow_self_signed_cert:
                result['requires_cert_acceptance'] = True
            if self._on_certificate_error is not None:
                try:
                    self._on_certificate_error(error)
                except Exception:
                    logger.exception("Certificate error callback failed")
        return result
