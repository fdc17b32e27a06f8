"""
accounts-oauth - OAuth2 login with FIWARE and Imgur.

Usage:
    from accounts_oauth import build_registry

    registry = build_registry()
    fiware = registry.get("fiware")

    # Start a login; the launcher takes the browser to the provider
    completion = fiware.request_credential(launcher, {"login_style": "popup"})

    # On callback, exchange the code and normalize the profile
    result = await fiware.handle_callback(query)
    result.service_data  # access_token, expires_at, refresh_token?, id, ...
"""

from accounts_oauth.auth.identity import CallbackResult, TokenResponse, normalize_identity
from accounts_oauth.auth.providers import (
    FiwareProvider,
    ImgurProvider,
    OAuthProvider,
    ProviderRegistry,
    build_registry,
)
from accounts_oauth.auth.service_configuration import ProviderConfig, ServiceConfigurations
from accounts_oauth.config import Settings, get_settings
from accounts_oauth.errors import (
    ConfigurationMissing,
    InvalidState,
    OAuthError,
    ProfileFetchFailed,
    TokenExchangeFailed,
)

__version__ = "0.1.0"

__all__ = [
    "CallbackResult",
    "TokenResponse",
    "normalize_identity",
    "FiwareProvider",
    "ImgurProvider",
    "OAuthProvider",
    "ProviderRegistry",
    "build_registry",
    "ProviderConfig",
    "ServiceConfigurations",
    "Settings",
    "get_settings",
    "ConfigurationMissing",
    "InvalidState",
    "OAuthError",
    "ProfileFetchFailed",
    "TokenExchangeFailed",
]
