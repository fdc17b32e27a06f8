"""FIWARE OAuth Provider.

Implements the OAuth 2.0 flow against a FIWARE Keyrock IdM whose root URL is
configured per deployment (e.g. https://account.lab.fiware.org).
"""

from typing import Any

from accounts_oauth.auth.identity import TokenResponse
from accounts_oauth.auth.providers.base import OAuthProvider, ProfileRequest
from accounts_oauth.auth.service_configuration import ProviderConfig
from accounts_oauth.errors import ConfigurationMissing


class FiwareProvider(OAuthProvider):
    """FIWARE IdM provider implementation.

    The account endpoint answers with the profile object itself:

        {"id": 1, "displayName": "Demo user", "email": "demo@fiware.org",
         "roles": [], "organizations": []}
    """

    # id is required by the host account system
    WHITELISTED_FIELDS = ["id", "email", "displayName"]

    @property
    def provider_name(self) -> str:
        return "fiware"

    @property
    def display_name(self) -> str:
        return "Fiware"

    def popup_options(self) -> dict[str, Any]:
        return {"height": 600}

    def _root_url(self, config: ProviderConfig) -> str:
        if not config.root_url:
            raise ConfigurationMissing(self.provider_name, "root URL is not set")
        return config.root_url.rstrip("/")

    def authorize_url(self, config: ProviderConfig) -> str:
        return f"{self._root_url(config)}/oauth2/authorize"

    def token_endpoint(self, config: ProviderConfig) -> str:
        return f"{self._root_url(config)}/oauth2/token"

    def token_request_body(
        self,
        config: ProviderConfig,
        code: str,
        redirect_uri: str,
    ) -> dict[str, str]:
        # The IdM matches the redirect URI against the registered application;
        # client credentials are not part of this request.
        return {
            "code": code,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }

    def profile_requests(
        self,
        config: ProviderConfig,
        token: TokenResponse,
    ) -> list[ProfileRequest]:
        return [
            ProfileRequest(
                url=f"{self._root_url(config)}/user",
                params={"access_token": token.access_token},
            )
        ]
