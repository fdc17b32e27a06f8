"""Imgur OAuth Provider.

Implements the OAuth 2.0 flow for Imgur accounts.
"""

from typing import Any
from urllib.parse import quote

from accounts_oauth.auth.identity import TokenResponse
from accounts_oauth.auth.providers.base import OAuthProvider, ProfileRequest
from accounts_oauth.auth.service_configuration import ProviderConfig, open_secret
from accounts_oauth.errors import ProfileFetchFailed


class ImgurProvider(OAuthProvider):
    """Imgur provider implementation.

    Imgur wraps every API payload as {"data": {...}, "success": true, "status": 200}
    and only reveals the account username in the token response, so the profile
    is fetched per username: account data first, then account settings.
    """

    API_URL = "https://api.imgur.com"
    AUTHORIZE_URL = f"{API_URL}/oauth2/authorize"
    TOKEN_URL = f"{API_URL}/oauth2/token"
    ACCOUNT_URL = f"{API_URL}/3/account/{{username}}"
    SETTINGS_URL = f"{API_URL}/3/account/{{username}}/settings"

    WHITELISTED_FIELDS = [
        "id",
        "url",
        "bio",
        "reputation",
        "created",
        "pro_expiration",
        "email",
    ]

    @property
    def provider_name(self) -> str:
        return "imgur"

    @property
    def display_name(self) -> str:
        return "Imgur"

    def authorize_url(self, config: ProviderConfig) -> str:
        return self.AUTHORIZE_URL

    def token_endpoint(self, config: ProviderConfig) -> str:
        return self.TOKEN_URL

    def token_request_body(
        self,
        config: ProviderConfig,
        code: str,
        redirect_uri: str,
    ) -> dict[str, str]:
        return {
            "code": code,
            "client_id": config.client_id,
            "client_secret": open_secret(
                config.secret, self.settings.oauth_secret_key, self.provider_name
            ),
            "grant_type": "authorization_code",
        }

    def parse_token_response(self, data: dict[str, Any]) -> TokenResponse:
        token = super().parse_token_response(data)
        token.username = data.get("account_username")
        return token

    def profile_requests(
        self,
        config: ProviderConfig,
        token: TokenResponse,
    ) -> list[ProfileRequest]:
        if not token.username:
            raise ProfileFetchFailed(
                f"Failed to fetch account data from {self.display_name}. "
                "Token response has no account username"
            )

        username = quote(token.username, safe="")
        return [
            ProfileRequest(
                url=self.ACCOUNT_URL.format(username=username),
                envelope="data",
                description="account data",
            ),
            ProfileRequest(
                url=self.SETTINGS_URL.format(username=username),
                envelope="data",
                description="account settings",
            ),
        ]
