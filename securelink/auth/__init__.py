# Client Authentication Module
"""
Client authentication for handshake and API requests:
- HMAC-SHA256 timestamp signatures - client_auth.py
- Authentication header construction - client_auth.py
- Server-side style signature validation - client_auth.py
"""

from .client_auth import (
    ClientAuthenticator,
    sign_timestamp,
    verify_signature,
    current_timestamp,
    HEADER_CLIENT_ID,
    HEADER_TIMESTAMP,
    HEADER_SIGNATURE,
    HEADER_ORIGIN,
)

__all__ = [
    'ClientAuthenticator',
    'sign_timestamp',
    'verify_signature',
    'current_timestamp',
    'HEADER_CLIENT_ID',
    'HEADER_TIMESTAMP',
    'HEADER_SIGNATURE',
    'HEADER_ORIGIN',
]
