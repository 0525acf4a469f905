# Transport Module
"""
Network layer:
- Non-blocking HTTP over requests - http.py
- Encrypted application requests - dispatcher.py
"""

from .http import HttpTransport, HttpResponse
from .dispatcher import SecureRequestDispatcher, HEADER_SESSION_ID

__all__ = [
    'HttpTransport',
    'HttpResponse',
    'SecureRequestDispatcher',
    'HEADER_SESSION_ID',
]
