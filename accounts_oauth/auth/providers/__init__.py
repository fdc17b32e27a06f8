"""OAuth Provider Abstraction Layer.

Supports login with:
- FIWARE (Keyrock IdM, configurable root URL)
- Imgur
"""

from accounts_oauth.auth.providers.base import OAuthProvider, ProfileRequest
from accounts_oauth.auth.providers.fiware_provider import FiwareProvider
from accounts_oauth.auth.providers.imgur_provider import ImgurProvider
from accounts_oauth.auth.providers.registry import ProviderRegistry, build_registry

__all__ = [
    "OAuthProvider",
    "ProfileRequest",
    "FiwareProvider",
    "ImgurProvider",
    "ProviderRegistry",
    "build_registry",
]
