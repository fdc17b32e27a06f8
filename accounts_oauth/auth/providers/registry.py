"""OAuth Provider Registry.

Maps service names to provider instances. The registry is built once at
startup by build_registry() and passed to whatever needs it:
- Provider registration
- Provider lookup by name
- Listing providers with their configuration status
"""

import httpx

from accounts_oauth.auth.credentials import CredentialStore
from accounts_oauth.auth.providers.base import OAuthProvider
from accounts_oauth.auth.service_configuration import (
    ServiceConfigurations,
    configurations_from_settings,
)
from accounts_oauth.config import Settings, get_settings
from accounts_oauth.core.logging import get_logger

logger = get_logger(__name__)


class ProviderRegistry:
    """Named collection of OAuth providers."""

    def __init__(self):
        self._providers: dict[str, OAuthProvider] = {}

    def register(self, provider: OAuthProvider) -> None:
        """Register a provider under its service name."""
        self._providers[provider.provider_name] = provider

    def get(self, name: str) -> OAuthProvider | None:
        """Get a registered provider by name."""
        return self._providers.get(name)

    def names(self) -> list[str]:
        return list(self._providers)

    def list_providers(self) -> list[dict]:
        """List all providers with display info."""
        return [
            {
                "name": p.provider_name,
                "display_name": p.display_name,
                "configured": p.get_config() is not None,
            }
            for p in self._providers.values()
        ]

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)


def build_registry(
    settings: Settings | None = None,
    configurations: ServiceConfigurations | None = None,
    credentials: CredentialStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ProviderRegistry:
    """Build the registry with every supported provider.

    Providers share one configuration store and one credential store. When no
    configuration store is given, it is seeded from settings.
    """
    from accounts_oauth.auth.providers.fiware_provider import FiwareProvider
    from accounts_oauth.auth.providers.imgur_provider import ImgurProvider

    settings = settings or get_settings()
    if configurations is None:
        configurations = configurations_from_settings(settings)
    if credentials is None:
        credentials = CredentialStore(ttl_seconds=settings.pending_credential_ttl_seconds)

    registry = ProviderRegistry()
    for provider_class in (FiwareProvider, ImgurProvider):
        provider = provider_class(configurations, credentials, settings, http_client)
        registry.register(provider)
        logger.info(
            f"Registered {provider.display_name} OAuth provider",
            configured=provider.get_config() is not None,
        )

    logger.info(f"Initialized {len(registry)} OAuth providers: {registry.names()}")
    return registry
