# Secure Messaging Module
"""
Session channel implementations including:
- ECDH (P-256) shared secret derivation
- SHA-256 session key derivation into an opaque AES-GCM key handle
- AES-256-GCM encryption with a fresh 12-byte IV per message
- Envelope codec and plaintext-error classification

Message format: base64(iv | ciphertext | tag)
"""

from .envelope import (
    EncryptedEnvelope,
    PlainError,
    MalformedEnvelopeError,
    classify_payload,
    base64_to_bytes,
    bytes_to_base64,
)

from .secure_channel import (
    KeyPair,
    ECDHKeyExchange,
    SessionKey,
    SessionContext,
    SecureChannel,
    derive_key,
    generate_nonce,
    export_public_key,
    import_public_key,
)

__all__ = [
    # Envelope
    'EncryptedEnvelope',
    'PlainError',
    'MalformedEnvelopeError',
    'classify_payload',
    'base64_to_bytes',
    'bytes_to_base64',
    # Channel
    'KeyPair',
    'ECDHKeyExchange',
    'SessionKey',
    'SessionContext',
    'SecureChannel',
    'derive_key',
    'generate_nonce',
    'export_public_key',
    'import_public_key',
]
