"""
Client Authentication Module

Proves client identity on handshake and API requests with:
- HMAC-SHA256 signature over "{client_id}:{timestamp}"
- A static pre-shared authentication key
- Millisecond timestamps (replay window enforced server-side)

Header set sent with every authenticated request:
    X-Client-ID, X-Timestamp, X-Signature (optional), Origin

Security considerations:
- A signing failure degrades the request to unauthenticated instead
  of aborting it; the server decides whether to accept it
- Use constant-time comparison (hmac.compare_digest) when verifying
- Never log the authentication key or the signature
"""

import base64
import hashlib
import hmac
import logging
import time
from typing import Dict, Optional, Union

from ..config import DEFAULT_AUTH_KEY, DEFAULT_CLIENT_ID


logger = logging.getLogger(__name__)

# Header names
HEADER_CLIENT_ID = "X-Client-ID"
HEADER_TIMESTAMP = "X-Timestamp"
HEADER_SIGNATURE = "X-Signature"
HEADER_ORIGIN = "Origin"

# Server-side timestamp tolerance (5 minutes)
TIMESTAMP_TOLERANCE_MS = 5 * 60 * 1000


def current_timestamp() -> str:
    """Milliseconds since the Unix epoch as a decimal string."""
    return str(int(time.time() * 1000))


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"expected str or bytes, got {type(value).__name__}")


def sign_timestamp(client_id: str, timestamp: str,
                   auth_key: Union[str, bytes] = DEFAULT_AUTH_KEY) -> Optional[str]:
    """
    Sign a timestamp for a client.

    Args:
        client_id: Client identifier
        timestamp: Timestamp string (milliseconds)
        auth_key: Pre-shared authentication key

    Returns:
        Base64-encoded HMAC-SHA256 signature, or None if signing failed
    """
    try:
        data = _to_bytes(f"{client_id}:{timestamp}")
        digest = hmac.new(_to_bytes(auth_key), data, hashlib.sha256).digest()
    except (TypeError, ValueError) as e:
        logger.warning("Error creating client signature: %s", e)
        return None
    return base64.b64encode(digest).decode("ascii")


def verify_signature(client_id: str, timestamp: str, signature: Optional[str],
                     auth_key: Union[str, bytes] = DEFAULT_AUTH_KEY,
                     tolerance_ms: int = TIMESTAMP_TOLERANCE_MS,
                     now_ms: int = None) -> bool:
    """
    Validate a client signature the way the server does.

    Args:
        client_id: Claimed client identifier
        timestamp: Timestamp string from X-Timestamp
        signature: Base64 signature from X-Signature
        auth_key: Pre-shared authentication key
        tolerance_ms: Maximum clock difference accepted
        now_ms: Current time in ms (defaults to the wall clock)

    Returns:
        True if the timestamp is fresh and the signature matches
    """
    if not client_id or not timestamp or not signature:
        return False

    try:
        request_ms = int(timestamp)
    except ValueError:
        return False

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if abs(now_ms - request_ms) > tolerance_ms:
        return False

    expected = sign_timestamp(client_id, timestamp, auth_key)
    if expected is None:
        return False

    # CONSTANT-TIME comparison
    return hmac.compare_digest(expected.encode("ascii"), _to_bytes(signature))


class ClientAuthenticator:
    """
    Builds authentication headers for a single client identity.

    Example:
        >>> auth = ClientAuthenticator("street-med-frontend-local", key)
        >>> headers = auth.build_headers()
        >>> headers['X-Client-ID']
        'street-med-frontend-local'
    """

    def __init__(self, client_id: str = DEFAULT_CLIENT_ID,
                 auth_key: Union[str, bytes] = DEFAULT_AUTH_KEY,
                 origin: Optional[str] = None):
        """
        Args:
            client_id: Identifier sent in X-Client-ID
            auth_key: Pre-shared HMAC key
            origin: Value for the Origin header (omitted if None)
        """
        self._client_id = client_id
        self._auth_key = auth_key
        self._origin = origin

    @property
    def client_id(self) -> str:
        return self._client_id

    def sign_timestamp(self, timestamp: str) -> Optional[str]:
        """Sign a timestamp with this client's identity and key."""
        return sign_timestamp(self._client_id, timestamp, self._auth_key)

    def build_headers(self, timestamp: str = None) -> Dict[str, str]:
        """
        Build a fresh set of authentication headers.

        A missing signature leaves X-Signature out; the request is sent
        unauthenticated rather than failing.

        Args:
            timestamp: Timestamp to sign (defaults to now)

        Returns:
            Header dict
        """
        timestamp = timestamp or current_timestamp()
        headers = {
            HEADER_CLIENT_ID: self._client_id,
            HEADER_TIMESTAMP: timestamp,
        }
        if self._origin:
            headers[HEADER_ORIGIN] = self._origin

        signature = self.sign_timestamp(timestamp)
        if signature:
            headers[HEADER_SIGNATURE] = signature
        else:
            logger.warning("Client authentication signature unavailable for %s",
                           self._client_id)
        return headers
