"""
Client Configuration

Settings for the secure-channel client, with defaults suitable for a
local development backend and an environment-variable loader.

Base URL resolution:
    production  -> SECURELINK_BASE_URL (required)
    otherwise   -> SECURELINK_SECURE_BASE_URL or https://localhost:8443
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Union

from .errors import ConfigurationError


# Defaults
DEFAULT_ENVIRONMENT = "development"
DEFAULT_SECURE_BASE_URL = "https://localhost:8443"
DEFAULT_CLIENT_ID = "default-client-id"
DEFAULT_AUTH_KEY = "street-med-client-authentication-key"  # development key shared with the backend
DEFAULT_ORIGIN = "http://localhost:3000"
DEFAULT_REQUEST_TIMEOUT = 10.0   # seconds per HTTP call
DEFAULT_HANDSHAKE_TIMEOUT = 30.0  # seconds for the whole handshake

ENV_PREFIX = "SECURELINK_"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_float(name: str, value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e
    if parsed <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return parsed


def _parse_verify(value: str) -> Union[bool, str]:
    """`true`/`false`, or a path to a CA bundle."""
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return value


@dataclass
class ClientConfig:
    """
    Settings for SecureClient and its collaborators.

    Attributes:
        base_url: Backend root, without trailing slash
        environment: 'development' or 'production'
        client_id: Identifier sent in X-Client-ID
        auth_key: Pre-shared key for HMAC request signatures
        origin: Value sent in the Origin header
        request_timeout: Per-request timeout in seconds
        handshake_timeout: Timeout for the whole handshake in seconds
        verify_tls: TLS verification flag or CA bundle path
        allow_self_signed_cert: Flag transport failures as needing
            certificate acceptance
        probe_on_transport_failure: Issue the diagnostic probe when the
            handshake cannot reach the server
        allow_plaintext: Allow plain JSON traffic while the channel is
            not initialized
    """
    base_url: str = DEFAULT_SECURE_BASE_URL
    environment: str = DEFAULT_ENVIRONMENT
    client_id: str = DEFAULT_CLIENT_ID
    auth_key: str = field(default=DEFAULT_AUTH_KEY, repr=False)
    origin: str = DEFAULT_ORIGIN
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT
    verify_tls: Union[bool, str] = True
    allow_self_signed_cert: bool = False
    probe_on_transport_failure: bool = True
    allow_plaintext: Optional[bool] = None

    def __post_init__(self):
        if not self.base_url:
            raise ConfigurationError("base_url is required")
        self.base_url = self.base_url.rstrip("/")
        if not self.client_id:
            raise ConfigurationError("client_id is required")
        if self.allow_plaintext is None:
            self.allow_plaintext = self.is_development

    @property
    def is_development(self) -> bool:
        return self.environment in ("development", "dev")

    def url(self, path: str) -> str:
        """Join a path onto base_url; absolute URLs pass through."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return self.base_url + path

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> 'ClientConfig':
        """
        Build a config from SECURELINK_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            ClientConfig

        Raises:
            ConfigurationError: On missing or malformed values
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value if value not in (None, "") else None

        environment = get("ENVIRONMENT") or DEFAULT_ENVIRONMENT
        if environment == "production":
            base_url = get("BASE_URL")
            if not base_url:
                raise ConfigurationError(
                    f"{ENV_PREFIX}BASE_URL is required in production"
                )
        else:
            base_url = get("SECURE_BASE_URL") or DEFAULT_SECURE_BASE_URL

        kwargs = {
            'base_url': base_url,
            'environment': environment,
            'client_id': get("CLIENT_ID") or DEFAULT_CLIENT_ID,
            'auth_key': get("AUTH_KEY") or DEFAULT_AUTH_KEY,
            'origin': get("ORIGIN") or DEFAULT_ORIGIN,
        }

        timeout = get("REQUEST_TIMEOUT")
        if timeout:
            kwargs['request_timeout'] = _parse_float(ENV_PREFIX + "REQUEST_TIMEOUT", timeout)
        handshake_timeout = get("HANDSHAKE_TIMEOUT")
        if handshake_timeout:
            kwargs['handshake_timeout'] = _parse_float(
                ENV_PREFIX + "HANDSHAKE_TIMEOUT", handshake_timeout
            )
        verify = get("VERIFY_TLS")
        if verify:
            kwargs['verify_tls'] = _parse_verify(verify)
        for key, name in (('allow_self_signed_cert', "ALLOW_SELF_SIGNED_CERT"),
                          ('probe_on_transport_failure', "PROBE_ON_FAILURE"),
                          ('allow_plaintext', "ALLOW_PLAINTEXT")):
            value = get(name)
            if value is not None:
                kwargs[key] = _parse_bool(ENV_PREFIX + name, value)

        return cls(**kwargs)
