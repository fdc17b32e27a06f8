"""Per-service OAuth configuration.

Holds the settings an administrator enters in a provider's configure dialog
(root URL, redirect URI, client id, client secret) and serves them to the
providers. Client secrets may be stored sealed; providers that send the secret
over the wire open it first.
"""

import base64
import hashlib
import threading
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken

from accounts_oauth.config import Settings
from accounts_oauth.errors import ConfigurationMissing


@dataclass(frozen=True)
class SealedSecret:
    """A client secret encrypted at rest (Fernet token)."""

    ciphertext: str


@dataclass(frozen=True)
class ProviderConfig:
    """OAuth settings for one service, read-only during a login attempt."""

    service: str
    client_id: str
    secret: str | SealedSecret
    redirect_uri: str | None = None
    root_url: str | None = None  # FIWARE IdM root
    login_style: str | None = None  # per-service default ("popup" or "redirect")


@dataclass(frozen=True)
class ConfigField:
    """One editable field of a configure dialog."""

    property: str
    label: str


CONFIGURATION_FIELDS: dict[str, list[ConfigField]] = {
    "fiware": [
        ConfigField("rootURL", "Root URL"),
        ConfigField("redirectURI", "Redirect URI"),
        ConfigField("clientId", "Client Id"),
        ConfigField("secret", "Client Secret"),
    ],
    "imgur": [
        ConfigField("clientId", "Client Id"),
        ConfigField("secret", "Client Secret"),
    ],
}


def configuration_fields(service: str) -> list[ConfigField]:
    """Fields shown in the configure dialog for a service."""
    try:
        return CONFIGURATION_FIELDS[service]
    except KeyError:
        raise ConfigurationMissing(service, "no configure dialog") from None


def default_redirect_uri(site_url: str, service: str) -> str:
    """Callback URL used when a service has no explicit redirect URI."""
    return f"{site_url.rstrip('/')}/_oauth/{service}"


def _fernet(key: str) -> Fernet:
    # Fernet needs 32 url-safe base64 bytes; derive them from the configured key
    key_bytes = hashlib.sha256(key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def seal_secret(plaintext: str, key: str) -> SealedSecret:
    """Encrypt a client secret for storage."""
    return SealedSecret(_fernet(key).encrypt(plaintext.encode("utf-8")).decode("utf-8"))


def open_secret(secret: str | SealedSecret, key: str | None, service: str = "oauth") -> str:
    """Return the plaintext client secret.

    Plain strings pass through unchanged. Sealed secrets need the key they were
    sealed with.
    """
    if not isinstance(secret, SealedSecret):
        return secret
    if not key:
        raise ConfigurationMissing(service, "client secret is sealed but no OAUTH_SECRET_KEY is set")
    try:
        return _fernet(key).decrypt(secret.ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        raise ConfigurationMissing(service, "client secret could not be opened") from None


class ServiceConfigurations:
    """In-memory store of service configurations, keyed by service name.

    Safe to share process-wide; lookups return immutable configs.
    """

    def __init__(self, configs: list[ProviderConfig] | None = None):
        self._configs: dict[str, ProviderConfig] = {}
        self._lock = threading.Lock()
        for config in configs or []:
            self.upsert(config)

    def find(self, service: str) -> ProviderConfig | None:
        return self._configs.get(service)

    def upsert(self, config: ProviderConfig) -> None:
        with self._lock:
            self._configs[config.service] = config

    def remove(self, service: str) -> bool:
        with self._lock:
            return self._configs.pop(service, None) is not None

    def services(self) -> list[str]:
        return sorted(self._configs)


def configurations_from_settings(settings: Settings) -> ServiceConfigurations:
    """Seed a configuration store from environment settings.

    A service is configured only when its client id and secret are both set;
    FIWARE additionally needs its root URL.
    """
    store = ServiceConfigurations()

    if settings.fiware_client_id and settings.fiware_secret and settings.fiware_root_url:
        store.upsert(
            ProviderConfig(
                service="fiware",
                client_id=settings.fiware_client_id,
                secret=settings.fiware_secret,
                redirect_uri=settings.fiware_redirect_uri or None,
                root_url=settings.fiware_root_url,
            )
        )

    if settings.imgur_client_id and settings.imgur_secret:
        store.upsert(
            ProviderConfig(
                service="imgur",
                client_id=settings.imgur_client_id,
                secret=settings.imgur_secret,
                redirect_uri=settings.imgur_redirect_uri or None,
            )
        )

    return store
