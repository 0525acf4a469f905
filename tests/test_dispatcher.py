"""
Tests for the Secure Request Dispatcher.

Tests:
- Encrypted request/response through an established channel
- Plaintext (development) mode
- HTTP, transport and session-expiry failures
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from securelink.client import SecureClient
from securelink.config import ClientConfig
from securelink.errors import (
    CertificateOrNetworkError,
    HttpError,
    PreconditionError,
    SessionExpiredError,
)
from securelink.integration.event_logger import EventType

from .conftest import BASE_URL


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def echo(server):
    server.routes["/api/echo"] = lambda payload: {"received": payload}
    return server


class TestEncryptedRequests:
    """Requests sent through an initialized channel."""

    def test_roundtrip(self, ready_client, echo):
        result = run(ready_client.request("/api/echo", "POST", {"username": "alice"}))
        assert result == {"received": {"username": "alice"}}

    def test_wire_is_encrypted(self, ready_client, echo):
        run(ready_client.request("/api/echo", "POST", {"password": "S3cret!"}))
        sent = echo.requests[-1]

        assert sent.headers["Content-Type"] == "text/plain"
        assert sent.headers["X-Session-ID"] == "abc"
        assert "S3cret!" not in sent.body
        assert json.loads(echo.decrypt_for("abc", sent.body)) == {"password": "S3cret!"}

    def test_auth_headers_present(self, ready_client, echo):
        run(ready_client.request("/api/echo", "POST", {}))
        headers = echo.requests[-1].headers
        assert headers["X-Client-ID"] == "default-client-id"
        assert headers["X-Signature"]
        assert headers["X-Timestamp"]

    def test_get_without_body(self, ready_client, echo):
        result = run(ready_client.request("/api/echo"))
        assert result == {"received": None}
        assert echo.requests[-1].body is None

    def test_empty_response_body(self, ready_client, server):
        server.routes["/api/logout"] = lambda payload: None
        assert run(ready_client.request("/api/logout", "POST", {})) == {}

    def test_absolute_url(self, ready_client, echo):
        result = run(ready_client.request(BASE_URL + "/api/echo", "POST", [1, 2]))
        assert result == {"received": [1, 2]}


class TestPlaintextMode:
    """Traffic before the channel is initialized."""

    def test_plain_json_in_development(self, client, echo):
        result = run(client.request("/api/echo", "POST", {"name": "bob"}))

        assert result == {"received": {"name": "bob"}}
        sent = echo.requests[-1]
        assert sent.headers["Content-Type"] == "application/json"
        assert "X-Session-ID" not in sent.headers
        assert json.loads(sent.body) == {"name": "bob"}
        assert client.event_log.events(EventType.PLAINTEXT_REQUEST)

    def test_plaintext_refused_when_disallowed(self, server, echo):
        config = ClientConfig(base_url=BASE_URL, allow_plaintext=False)
        client = SecureClient(config, session=server)

        with pytest.raises(PreconditionError):
            run(client.request("/api/echo", "POST", {}))
        assert server.requests == []

    def test_production_defaults_to_no_plaintext(self, server):
        config = ClientConfig(base_url=BASE_URL, environment="production")
        assert config.allow_plaintext is False
        client = SecureClient(config, session=server)

        with pytest.raises(PreconditionError):
            run(client.request("/api/echo"))

    def test_https_required_outside_development(self, server):
        config = ClientConfig(base_url="http://backend.test", environment="production",
                              allow_plaintext=True)
        client = SecureClient(config, session=server)

        with pytest.raises(PreconditionError, match="HTTPS"):
            run(client.request("/api/echo"))


class TestFailures:
    """Errors surfaced by the dispatcher."""

    def test_http_error(self, ready_client):
        with pytest.raises(HttpError) as exc_info:
            run(ready_client.request("/api/missing"))
        assert exc_info.value.status == 404

    def test_transport_failure(self, server):
        hook = MagicMock()
        client = SecureClient(ClientConfig(base_url=BASE_URL), session=server,
                              on_certificate_error=hook)
        server.unreachable = True

        with pytest.raises(CertificateOrNetworkError) as exc_info:
            run(client.request("/api/echo"))

        assert exc_info.value.url == BASE_URL + "/api/echo"
        hook.assert_called_once_with(exc_info.value)
        # No probe outside the handshake
        assert len(server.requests) == 1

    def test_failing_certificate_hook_keeps_transport_error(self, server):
        hook = MagicMock(side_effect=RuntimeError("ui broke"))
        client = SecureClient(ClientConfig(base_url=BASE_URL), session=server,
                              on_certificate_error=hook)
        server.unreachable = True

        with pytest.raises(CertificateOrNetworkError):
            run(client.request("/api/echo"))
        hook.assert_called_once()

    def test_session_expired(self, ready_client, echo):
        echo.expire("abc")

        with pytest.raises(SessionExpiredError):
            run(ready_client.request("/api/echo", "POST", {"a": 1}))

        assert not ready_client.is_initialized()
        assert ready_client.event_log.events(EventType.SESSION_EXPIRED)

    def test_recovery_after_expiry(self, ready_client, echo):
        echo.expire("abc")
        with pytest.raises(SessionExpiredError):
            run(ready_client.request("/api/echo", "POST", {}))

        result = run(ready_client.perform_key_exchange())
        assert result['success']
        assert run(ready_client.request("/api/echo", "POST", {"b": 2})) == {"received": {"b": 2}}
