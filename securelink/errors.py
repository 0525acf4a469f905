"""
SecureLink Errors

Exception taxonomy for the secure-channel client.

Every failure kind is its own type so callers can branch on the class
instead of on message text:

- HandshakeError            malformed/missing server handshake response
- HandshakeCompletionError  non-2xx on handshake completion
- KeyDerivationError        no shared secret to derive a key from
- PreconditionError         encrypt/decrypt before initialization
- SessionExpiredError       decrypt failure or plaintext error payload
- CertificateOrNetworkError transport-level failure (DNS, TLS, refused)
- HttpError                 generic non-2xx response
"""

from typing import Optional


class SecureLinkError(Exception):
    """Base class for all SecureLink errors."""
    pass


class ConfigurationError(SecureLinkError):
    """Raised when client settings are missing or invalid."""
    pass


class HandshakeError(SecureLinkError):
    """Raised when the server's handshake response is unusable."""
    pass


class HandshakeCompletionError(HandshakeError):
    """Raised when the complete-handshake call returns a non-2xx status."""

    def __init__(self, status: int, message: str = None):
        self.status = status
        super().__init__(message or f"Handshake completion failed: {status}")


class KeyDerivationError(SecureLinkError):
    """Raised when a session key cannot be derived."""
    pass


class PreconditionError(SecureLinkError):
    """Raised when an operation is called in the wrong state."""
    pass


class SessionExpiredError(SecureLinkError):
    """
    The session is gone and a fresh handshake is required.

    Distinct from credential errors: it means "re-run the handshake",
    not "wrong password".
    """

    def __init__(self, message: str = "Session expired or invalid. Please re-establish the secure channel."):
        super().__init__(message)


class CertificateOrNetworkError(SecureLinkError):
    """
    Transport-level failure: DNS, TLS/certificate, refused connection.

    Recoverable. Callers should surface a certificate-acceptance or
    connectivity-retry flow rather than a generic error.
    """

    def __init__(self, url: str, cause: Optional[BaseException] = None,
                 message: str = None):
        self.url = url
        self.cause = cause
        if message is None:
            message = f"Could not reach {url}"
            if cause is not None:
                message += f": {cause}"
        super().__init__(message)


class HandshakeTransportError(CertificateOrNetworkError):
    """
    Composite error raised when the handshake cannot reach the server.

    Wraps the original transport failure together with the outcome of
    the diagnostic probe issued after it.
    """

    def __init__(self, original: CertificateOrNetworkError,
                 probe_error: Optional[BaseException] = None,
                 probe_attempted: bool = False):
        self.original = original
        self.probe_error = probe_error
        self.probe_attempted = probe_attempted
        super().__init__(original.url, cause=original.cause,
                         message=f"Handshake transport failure: {original}")


class HttpError(SecureLinkError):
    """Raised for any non-2xx HTTP response outside the handshake."""

    def __init__(self, status: int, url: str = None):
        self.status = status
        self.url = url
        message = f"API call failed with status: {status}"
        if url:
            message += f" ({url})"
        super().__init__(message)
