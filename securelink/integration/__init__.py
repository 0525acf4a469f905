# Integration Module
"""
Security event log for handshake and request events.

All events are logged with privacy-preserving client hashes.
"""

from .event_logger import (
    EventType,
    SecurityEvent,
    SecurityEventLog,
    get_client_hash,
)

__all__ = [
    'EventType',
    'SecurityEvent',
    'SecurityEventLog',
    'get_client_hash',
]
