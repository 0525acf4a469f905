# SecureLink
"""
Secure-channel client for the backend API:
- Authenticated ECDH (P-256) handshake - handshake/
- SHA-256 session key, AES-256-GCM envelopes - messaging/
- HMAC-SHA256 client authentication - auth/
- Encrypted API requests - transport/
- Security event log - integration/
"""

from .config import ClientConfig
from .client import SecureClient
from .errors import (
    SecureLinkError,
    ConfigurationError,
    HandshakeError,
    HandshakeCompletionError,
    HandshakeTransportError,
    KeyDerivationError,
    PreconditionError,
    SessionExpiredError,
    CertificateOrNetworkError,
    HttpError,
)

__version__ = "1.0.0"

__all__ = [
    'ClientConfig',
    'SecureClient',
    'SecureLinkError',
    'ConfigurationError',
    'HandshakeError',
    'HandshakeCompletionError',
    'HandshakeTransportError',
    'KeyDerivationError',
    'PreconditionError',
    'SessionExpiredError',
    'CertificateOrNetworkError',
    'HttpError',
]
