"""
Session Envelope Codec

Wire format of every encrypted payload:

    base64( iv (12 bytes) | AES-GCM ciphertext+tag )

A response body is one of two variants, decided once by a structural
check before any cryptography runs:

    PlainError         JSON object with a top-level "error" or "status"
                       field (the server could not encrypt, usually
                       because the session is gone)
    EncryptedEnvelope  anything else, decoded as base64(iv | ciphertext)
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Union


NONCE_SIZE = 12   # 96-bit IV for GCM
TAG_SIZE = 16     # 128-bit GCM tag

ERROR_FIELDS = ("error", "status")


class MalformedEnvelopeError(ValueError):
    """Raised when a payload cannot be decoded as an envelope."""
    pass


def bytes_to_base64(data: bytes) -> str:
    """Standard base64 with padding."""
    return base64.b64encode(data).decode("ascii")


def base64_to_bytes(text: str) -> bytes:
    """
    Decode base64, tolerating missing or extra padding.

    Trailing '=' are stripped and the string is re-padded to a multiple
    of 4 before strict decoding.

    Raises:
        MalformedEnvelopeError: On characters outside the base64 alphabet
    """
    stripped = text.strip().rstrip("=")
    padding = (4 - len(stripped) % 4) % 4
    try:
        return base64.b64decode(stripped + "=" * padding, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelopeError(f"Invalid base64 payload: {e}") from e


@dataclass(frozen=True)
class EncryptedEnvelope:
    """IV plus ciphertext (GCM tag appended), self-contained."""
    iv: bytes
    ciphertext: bytes

    def to_bytes(self) -> bytes:
        return self.iv + self.ciphertext

    def to_base64(self) -> str:
        return bytes_to_base64(self.to_bytes())

    @classmethod
    def from_bytes(cls, data: bytes) -> 'EncryptedEnvelope':
        """
        Split raw bytes into IV and ciphertext.

        Raises:
            MalformedEnvelopeError: If too short to hold an IV and a tag
        """
        if len(data) < NONCE_SIZE + TAG_SIZE:
            raise MalformedEnvelopeError(
                f"Envelope too short: {len(data)} bytes"
            )
        return cls(iv=data[:NONCE_SIZE], ciphertext=data[NONCE_SIZE:])

    @classmethod
    def from_base64(cls, text: str) -> 'EncryptedEnvelope':
        return cls.from_bytes(base64_to_bytes(text))


@dataclass(frozen=True)
class PlainError:
    """A plaintext JSON error received where ciphertext was expected."""
    message: str
    body: Dict[str, Any]


def _error_message(body: Dict[str, Any]) -> str:
    for key in ("error", "message", "status"):
        value = body.get(key)
        if value:
            return str(value)
    return "error"


def classify_payload(text: str) -> Union[PlainError, EncryptedEnvelope]:
    """
    Classify a response body as a plaintext error or an envelope.

    Args:
        text: Raw response body

    Returns:
        PlainError or EncryptedEnvelope

    Raises:
        MalformedEnvelopeError: If the body is neither
    """
    candidate = text.strip()
    if candidate.startswith("{"):
        try:
            body = json.loads(candidate)
        except ValueError:
            body = None
        if isinstance(body, dict) and any(f in body for f in ERROR_FIELDS):
            return PlainError(message=_error_message(body), body=body)

    return EncryptedEnvelope.from_base64(candidate)
