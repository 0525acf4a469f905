"""
Event Logger Module

Records security events raised by the handshake and the dispatcher.

Features:
- Handshake start/completion/failure events
- Session expiry and transport failure events
- Plaintext (bypass mode) traffic events
- Privacy-preserving client hashes (SHA-256)
- Callbacks for callers that surface events in a UI
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)

EVENT_VERSION = "1.0"
DEFAULT_MAX_EVENTS = 1000


def get_client_hash(client_id: str) -> str:
    """
    Compute privacy-preserving hash of a client id.

    Args:
        client_id: The plaintext client identifier

    Returns:
        Hex-encoded SHA-256 hash
    """
    return hashlib.sha256(client_id.encode()).hexdigest()


class EventType(Enum):
    """Types of security events that can be logged."""

    # Handshake events
    HANDSHAKE_STARTED = "handshake_started"
    HANDSHAKE_COMPLETED = "handshake_completed"
    HANDSHAKE_FAILED = "handshake_failed"

    # Session events
    SESSION_EXPIRED = "session_expired"
    CONTEXT_CLEARED = "context_cleared"

    # Transport events
    TRANSPORT_FAILURE = "transport_failure"
    PLAINTEXT_REQUEST = "plaintext_request"


# Events logged at warning level
_WARNING_EVENTS = {
    EventType.HANDSHAKE_FAILED,
    EventType.SESSION_EXPIRED,
    EventType.TRANSPORT_FAILURE,
    EventType.PLAINTEXT_REQUEST,
}


@dataclass
class SecurityEvent:
    """
    Represents a security event.

    The client id is only ever stored hashed.
    """
    event_type: EventType
    client_hash: str
    timestamp: float
    details: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'client': self.client_hash,
            'time': self.timestamp,
            'iso_time': datetime.fromtimestamp(self.timestamp).isoformat(),
            'details': self.details,
        }, separators=(',', ':'))

    @classmethod
    def from_json(cls, data_str: str) -> 'SecurityEvent':
        data = json.loads(data_str)
        return cls(
            event_type=EventType(data['type']),
            client_hash=data['client'],
            timestamp=data['time'],
            details=data.get('details', {}),
        )

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | "
            f"client:{self.client_hash[:8]}..."
        )


class SecurityEventLog:
    """
    Bounded in-memory security event log.

    Every event is also forwarded to the module logger and to any
    registered callbacks.
    """

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS):
        """
        Args:
            max_events: Oldest events are dropped beyond this many
        """
        self._events: List[SecurityEvent] = []
        self._max_events = max_events
        self._callbacks: List[Callable[[SecurityEvent], None]] = []

    def add_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        self._callbacks.append(callback)

    def record(self, event_type: EventType, client_id: str,
               **details: Any) -> SecurityEvent:
        """
        Record an event.

        Args:
            event_type: Kind of event
            client_id: Client identifier (hashed before storage)
            **details: Extra JSON-serializable fields

        Returns:
            The recorded SecurityEvent
        """
        event = SecurityEvent(
            event_type=event_type,
            client_hash=get_client_hash(client_id),
            timestamp=time.time(),
            details=details,
        )
        self._events.append(event)
        if len(self._events) > self._max_events:
            del self._events[:len(self._events) - self._max_events]

        level = logging.WARNING if event_type in _WARNING_EVENTS else logging.INFO
        logger.log(level, "%s %s", event_type.value, details)

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Security event callback failed")
        return event

    def events(self, event_type: Optional[EventType] = None) -> List[SecurityEvent]:
        """Return recorded events, optionally filtered by type."""
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e.event_type == event_type]

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)
