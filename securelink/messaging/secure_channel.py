"""
Secure Channel Module

Client side of the session channel:
- ECDH (P-256) shared secret with ephemeral client keys
- SHA-256 session key derivation
- AES-256-GCM authenticated encryption

Message Format:
    base64( iv (12 bytes) | ciphertext | tag (16 bytes) )

Security features:
- Ephemeral client key pair per handshake, dropped after derivation
- Session key is held in an opaque handle with no raw-bytes accessor
- Fresh random IV for every encryption
- Any decryption failure invalidates the session
"""

import hashlib
import logging
import secrets
import threading
from dataclasses import dataclass, field
from typing import Optional

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.backends import default_backend

from ..errors import (
    HandshakeError,
    KeyDerivationError,
    PreconditionError,
    SessionExpiredError,
)
from .envelope import (
    EncryptedEnvelope,
    MalformedEnvelopeError,
    PlainError,
    NONCE_SIZE,
    base64_to_bytes,
    bytes_to_base64,
    classify_payload,
)


logger = logging.getLogger(__name__)

# Constants
CURVE = ec.SECP256R1()  # P-256 curve
AES_KEY_SIZE = 32       # 256 bits
SHARED_SECRET_SIZE = 32  # 256-bit ECDH output on P-256


@dataclass
class KeyPair:
    """Ephemeral ECDH key pair container."""
    private_key: Optional[ec.EllipticCurvePrivateKey]
    public_key: ec.EllipticCurvePublicKey

    @classmethod
    def generate(cls) -> 'KeyPair':
        """Generate a new P-256 key pair."""
        private_key = ec.generate_private_key(CURVE, default_backend())
        return cls(private_key, private_key.public_key())

    def public_spki(self) -> bytes:
        """Public key as DER SubjectPublicKeyInfo."""
        return export_public_key(self.public_key)

    def public_spki_base64(self) -> str:
        return bytes_to_base64(self.public_spki())


def export_public_key(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Encode a public key as DER SubjectPublicKeyInfo."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )


def import_public_key(spki_base64: str) -> ec.EllipticCurvePublicKey:
    """
    Import a base64 SPKI public key as a P-256 ECDH key.

    Raises:
        HandshakeError: If the key is malformed or not on P-256
    """
    try:
        public_key = serialization.load_der_public_key(
            base64_to_bytes(spki_base64), default_backend()
        )
    except (MalformedEnvelopeError, UnsupportedAlgorithm, ValueError, TypeError) as e:
        raise HandshakeError(f"Invalid server public key: {e}") from e

    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise HandshakeError("Server public key is not an EC key")
    if public_key.curve.name != CURVE.name:
        raise HandshakeError(
            f"Server public key uses {public_key.curve.name}, expected {CURVE.name}"
        )
    return public_key


class ECDHKeyExchange:
    """
    Elliptic Curve Diffie-Hellman on P-256 with an ephemeral key pair.

    The private key is dropped after the first derivation; a new
    exchange needs a new instance.
    """

    def __init__(self, key_pair: KeyPair = None):
        self._key_pair = key_pair or KeyPair.generate()

    @property
    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._key_pair.public_key

    def public_spki_base64(self) -> str:
        """Local public key as base64 SPKI, for the complete-handshake body."""
        return self._key_pair.public_spki_base64()

    @property
    def is_spent(self) -> bool:
        return self._key_pair.private_key is None

    def derive_shared_secret(self, peer_public_key: ec.EllipticCurvePublicKey) -> bytes:
        """
        Derive the 256-bit shared secret with the peer's public key.

        Returns:
            32-byte shared secret

        Raises:
            KeyDerivationError: If this exchange was already used
        """
        if self._key_pair.private_key is None:
            raise KeyDerivationError("Ephemeral key pair already discarded")

        shared_secret = self._key_pair.private_key.exchange(ec.ECDH(), peer_public_key)
        # Ephemeral: discard the private key
        self._key_pair = KeyPair(None, self._key_pair.public_key)
        return shared_secret


def generate_nonce() -> bytes:
    """
    Generate a random IV for AES-GCM.

    CRITICAL: Never reuse an IV with the same key!

    Returns:
        12 random bytes
    """
    return secrets.token_bytes(NONCE_SIZE)


class SessionKey:
    """
    Opaque AES-256-GCM key handle.

    Exposes encryption and decryption only; the key bytes cannot be
    read back out.
    """

    __slots__ = ("_aesgcm",)

    def __init__(self, aesgcm: AESGCM):
        self._aesgcm = aesgcm

    def encrypt(self, nonce: bytes, plaintext: bytes) -> bytes:
        """Returns ciphertext with the 16-byte tag appended."""
        return self._aesgcm.encrypt(nonce, plaintext, None)

    def decrypt(self, nonce: bytes, ciphertext: bytes) -> bytes:
        """
        Raises:
            InvalidTag: If authentication fails
        """
        return self._aesgcm.decrypt(nonce, ciphertext, None)

    def __repr__(self) -> str:
        return "SessionKey(<opaque>)"


def derive_key(shared_secret: Optional[bytes]) -> SessionKey:
    """
    Derive the session key from an ECDH shared secret.

    key = SHA-256(shared_secret), matching the server's derivation.

    Args:
        shared_secret: Raw ECDH output

    Returns:
        Opaque SessionKey

    Raises:
        KeyDerivationError: If the shared secret is empty or missing
    """
    if not shared_secret:
        raise KeyDerivationError("No shared secret available")
    return SessionKey(AESGCM(hashlib.sha256(shared_secret).digest()))


@dataclass(frozen=True)
class SessionContext:
    """
    One established session. Replaced wholesale, never mutated.
    """
    session_id: str
    shared_secret: bytes = field(repr=False)
    key: SessionKey = field(repr=False)

    @property
    def initialized(self) -> bool:
        return bool(self.shared_secret) and self.key is not None


class SecureChannel:
    """
    Holds the live session and encrypts/decrypts payloads with it.

    Example:
        channel = SecureChannel()
        channel.establish("abc", shared_secret)

        envelope = channel.encrypt('{"username": "alice"}')
        plaintext = channel.decrypt(response_body)
    """

    def __init__(self):
        self._context: Optional[SessionContext] = None
        self._lock = threading.Lock()

    def is_initialized(self) -> bool:
        context = self._context
        return context is not None and context.initialized

    def get_session_id(self) -> Optional[str]:
        context = self._context
        return context.session_id if context is not None else None

    def establish(self, session_id: str, shared_secret: bytes) -> None:
        """
        Derive the session key and replace the current context.

        Raises:
            KeyDerivationError: If shared_secret is empty
        """
        if not session_id:
            raise HandshakeError("Missing session id")
        context = SessionContext(
            session_id=session_id,
            shared_secret=bytes(shared_secret or b""),
            key=derive_key(shared_secret),
        )
        with self._lock:
            self._context = context
        logger.info("Secure channel established for session %s", session_id)

    def clear(self) -> None:
        """Drop the current session."""
        with self._lock:
            self._context = None

    def _invalidate(self, context: SessionContext) -> None:
        # Only drop the context that failed; a newer one stays.
        with self._lock:
            if self._context is context:
                self._context = None
                logger.warning("Session %s invalidated", context.session_id)

    def _require_context(self) -> SessionContext:
        context = self._context
        if context is None or not context.initialized:
            raise PreconditionError("Security context not initialized")
        return context

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string for the server.

        Args:
            plaintext: Text to encrypt (UTF-8 encoded)

        Returns:
            base64(iv | ciphertext | tag)

        Raises:
            PreconditionError: If no session is established
        """
        context = self._require_context()
        nonce = generate_nonce()
        ciphertext = context.key.encrypt(nonce, plaintext.encode("utf-8"))
        return EncryptedEnvelope(nonce, ciphertext).to_base64()

    def decrypt(self, envelope: str) -> str:
        """
        Decrypt a server payload.

        A plaintext JSON error, malformed base64, a short envelope and a
        failed tag check are all reported the same way: the session is
        dropped and SessionExpiredError is raised.

        Args:
            envelope: Response body

        Returns:
            Decrypted text

        Raises:
            PreconditionError: If no session is established
            SessionExpiredError: If the payload cannot be decrypted
        """
        context = self._require_context()

        try:
            payload = classify_payload(envelope)
        except MalformedEnvelopeError as e:
            self._invalidate(context)
            raise SessionExpiredError() from e

        if isinstance(payload, PlainError):
            logger.warning("Received plaintext error instead of ciphertext: %s",
                           payload.message)
            self._invalidate(context)
            raise SessionExpiredError()

        try:
            plaintext = context.key.decrypt(payload.iv, payload.ciphertext)
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError) as e:
            self._invalidate(context)
            raise SessionExpiredError() from e
