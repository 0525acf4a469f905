"""
Shared fixtures: an in-process fake security backend.

FakeSecurityServer stands in for requests.Session. It implements the
initiate/complete handshake endpoints with a real P-256 key pair,
validates client signatures, and serves encrypted application routes.
"""

import asyncio
import base64
import hashlib
import json
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

import pytest
import requests
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from securelink.auth.client_auth import verify_signature
from securelink.client import SecureClient
from securelink.config import ClientConfig, DEFAULT_AUTH_KEY
from securelink.handshake.key_exchange import COMPLETE_PATH, INITIATE_PATH
from securelink.messaging.envelope import EncryptedEnvelope
from securelink.messaging.secure_channel import (
    KeyPair,
    SecureChannel,
    generate_nonce,
    import_public_key,
)


BASE_URL = "https://backend.test"

# SPKI of an id-ecPublicKey on secp112r1 (OID 1.3.132.0.6), a curve the
# cryptography backend does not support. The point is the curve generator.
UNSUPPORTED_CURVE_SPKI = base64.b64encode(bytes.fromhex(
    "3032"
    "3010" "06072a8648ce3d0201" "06052b81040006"
    "031e0004"
    "09487239995a5ee76b55f9c2f098"
    "a89ce5af8724c0a23e0e0ff77500"
)).decode()


def make_response(status: int, body: Any, url: str) -> requests.Response:
    """Build a requests.Response without a network."""
    if not isinstance(body, (str, bytes)):
        body = json.dumps(body)
    if isinstance(body, str):
        body = body.encode("utf-8")
    response = requests.Response()
    response.status_code = status
    response._content = body
    response.encoding = "utf-8"
    response.url = url
    return response


class RecordedRequest:
    def __init__(self, method: str, url: str, headers: Dict[str, str], body: Optional[bytes]):
        self.method = method
        self.url = url
        self.path = urlparse(url).path
        self.headers = dict(headers or {})
        self.body = body.decode("utf-8") if body is not None else None


class FakeSecurityServer:
    """Minimal backend speaking the handshake protocol."""

    def __init__(self, auth_key: str = DEFAULT_AUTH_KEY):
        self.auth_key = auth_key
        self.requests: List[RecordedRequest] = []
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.routes: Dict[str, Callable[[Any], Any]] = {}
        self.session_prefix = "abc"

        # Failure switches
        self.unreachable = False
        self.delay = 0.0
        self.require_signature = True
        self.initiate_status = 200
        self.initiate_body: Any = None
        self.complete_status = 200

    # requests.Session interface

    def request(self, method, url, headers=None, data=None, timeout=None, verify=None):
        self.requests.append(RecordedRequest(method, url, headers, data))
        if self.delay:
            time.sleep(self.delay)
        if self.unreachable:
            raise requests.exceptions.ConnectionError(
                "Failed to establish a new connection: [Errno 111] Connection refused"
            )

        path = urlparse(url).path
        if path == INITIATE_PATH:
            return self._initiate(url, headers or {})
        if path == COMPLETE_PATH:
            return self._complete(url, headers or {}, data)
        if path in self.routes:
            return self._route(path, url, headers or {}, data)
        return make_response(404, {'error': 'Not found'}, url)

    def close(self):
        pass

    # Handshake endpoints

    def _authenticated(self, headers: Dict[str, str]) -> bool:
        if not self.require_signature:
            return True
        return verify_signature(
            headers.get("X-Client-ID"),
            headers.get("X-Timestamp"),
            headers.get("X-Signature"),
            self.auth_key,
        )

    def _initiate(self, url, headers):
        if self.initiate_status != 200:
            return make_response(self.initiate_status, {'error': 'Internal error'}, url)
        if self.initiate_body is not None:
            return make_response(200, self.initiate_body, url)
        if not self._authenticated(headers):
            return make_response(401, {'error': 'Authentication failed'}, url)

        count = len(self.sessions)
        session_id = self.session_prefix if count == 0 else f"{self.session_prefix}-{count}"
        keys = KeyPair.generate()
        self.sessions[session_id] = {'keys': keys, 'aesgcm': None, 'expired': False}
        return make_response(200, {
            'sessionId': session_id,
            'serverPublicKey': keys.public_spki_base64(),
        }, url)

    def _complete(self, url, headers, data):
        if self.complete_status != 200:
            return make_response(self.complete_status, {'error': 'Rejected'}, url)
        if not self._authenticated(headers):
            return make_response(401, {'error': 'Authentication failed'}, url)

        body = json.loads(data.decode("utf-8"))
        session = self.sessions.get(body.get('sessionId'))
        if session is None or not body.get('clientPublicKey'):
            return make_response(400, {'error': 'Missing required parameters'}, url)

        client_key = import_public_key(body['clientPublicKey'])
        shared = session['keys'].private_key.exchange(ec.ECDH(), client_key)
        session['aesgcm'] = AESGCM(hashlib.sha256(shared).digest())
        return make_response(200, {'status': 'success'}, url)

    # Application routes

    def expire(self, session_id: str) -> None:
        self.sessions[session_id]['expired'] = True

    def decrypt_for(self, session_id: str, envelope: str) -> str:
        env = EncryptedEnvelope.from_base64(envelope)
        aesgcm = self.sessions[session_id]['aesgcm']
        return aesgcm.decrypt(env.iv, env.ciphertext, None).decode("utf-8")

    def encrypt_for(self, session_id: str, plaintext: str) -> str:
        nonce = generate_nonce()
        aesgcm = self.sessions[session_id]['aesgcm']
        return EncryptedEnvelope(nonce, aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)).to_base64()

    def _route(self, path, url, headers, data):
        handler = self.routes[path]
        session_id = headers.get("X-Session-ID")
        session = self.sessions.get(session_id)

        if session is None:
            payload = json.loads(data.decode("utf-8")) if data else None
            return make_response(200, handler(payload), url)

        if session['expired'] or session['aesgcm'] is None:
            return make_response(200, {'status': 'error', 'error': 'Session expired'}, url)

        payload = json.loads(self.decrypt_for(session_id, data.decode("utf-8"))) if data else None
        result = handler(payload)
        if result is None:
            return make_response(200, b"", url)
        return make_response(200, self.encrypt_for(session_id, json.dumps(result)), url)


@pytest.fixture
def server():
    return FakeSecurityServer()


@pytest.fixture
def config():
    return ClientConfig(base_url=BASE_URL)


@pytest.fixture
def client(server, config):
    c = SecureClient(config, session=server)
    yield c
    c.close()


@pytest.fixture
def ready_client(client):
    result = asyncio.run(client.perform_key_exchange())
    assert result['success'], result
    return client


@pytest.fixture
def channel():
    ch = SecureChannel()
    ch.establish("test-session", b"\x42" * 32)
    return ch
