# Handshake Module
"""
Authenticated ECDH handshake with the backend:
- initiate-handshake / complete-handshake exchange
- Protocol state machine (HandshakeState)
- Diagnostic probe on transport failure
"""

from .key_exchange import (
    KeyExchangeInitiator,
    HandshakeState,
    INITIATE_PATH,
    COMPLETE_PATH,
)

__all__ = [
    'KeyExchangeInitiator',
    'HandshakeState',
    'INITIATE_PATH',
    'COMPLETE_PATH',
]
