"""Base OAuth Provider.

Implements the OAuth 2.0 authorization-code login once. A concrete provider only
supplies its endpoints, the shape of its token request, the profile requests to
make and the fields it may copy into service data.
"""

from abc import ABC, abstractmethod
from concurrent.futures import Future
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator
from urllib.parse import urlencode

import httpx

from accounts_oauth.auth.credentials import CredentialStore
from accounts_oauth.auth.identity import CallbackResult, TokenResponse, normalize_identity
from accounts_oauth.auth.launcher import LoginLauncher, LoginRequest
from accounts_oauth.auth.service_configuration import (
    ProviderConfig,
    ServiceConfigurations,
    default_redirect_uri,
)
from accounts_oauth.auth.state import (
    AuthorizationState,
    encode_state,
    generate_credential_token,
    resolve_login_style,
)
from accounts_oauth.config import Settings
from accounts_oauth.core.logging import get_logger, log_operation, login_service_var
from accounts_oauth.errors import (
    ConfigurationMissing,
    ProfileFetchFailed,
    TokenExchangeFailed,
)

logger = get_logger(__name__)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _provider_error(body: Any, envelope: str | None = None) -> str | None:
    """OAuth-style error string from a response body, if the provider sent one."""
    if envelope is not None and isinstance(body, dict) and isinstance(body.get(envelope), dict):
        body = body[envelope]
    if not isinstance(body, dict) or not body.get("error"):
        return None
    detail = str(body["error"])
    if body.get("error_description"):
        detail = f"{detail}: {body['error_description']}"
    return detail


@dataclass
class ProfileRequest:
    """One authenticated GET against a provider's REST API."""

    url: str
    params: dict[str, str] = field(default_factory=dict)
    # Key wrapping the profile object in the response body, if any
    envelope: str | None = None
    description: str = "account data"


class OAuthProvider(ABC):
    """Abstract base class for OAuth 2.0 login providers.

    Each provider must implement:
    - authorize_url(): Where the browser is sent for consent
    - token_endpoint(): Where the authorization code is exchanged
    - token_request_body(): Form fields of the token request
    - profile_requests(): REST calls that make up the identity

    Optional overrides:
    - parse_token_response(): Pick provider-specific token fields
    - popup_options(): Window hints for popup logins
    """

    oauth_version = 2

    # Fields copied from the merged identity into service data
    WHITELISTED_FIELDS: list[str] = []

    def __init__(
        self,
        configurations: ServiceConfigurations,
        credentials: CredentialStore,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.configurations = configurations
        self.credentials = credentials
        self.settings = settings
        self._http_client = http_client

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Service name (e.g., 'fiware', 'imgur')."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name used in messages."""
        pass

    @property
    def whitelisted_fields(self) -> list[str]:
        return list(self.WHITELISTED_FIELDS)

    @abstractmethod
    def authorize_url(self, config: ProviderConfig) -> str:
        """Authorization endpoint without query parameters."""
        pass

    @abstractmethod
    def token_endpoint(self, config: ProviderConfig) -> str:
        pass

    @abstractmethod
    def token_request_body(
        self,
        config: ProviderConfig,
        code: str,
        redirect_uri: str,
    ) -> dict[str, str]:
        """Form fields posted to the token endpoint."""
        pass

    @abstractmethod
    def profile_requests(
        self,
        config: ProviderConfig,
        token: TokenResponse,
    ) -> list[ProfileRequest]:
        """Profile requests in merge order; later results win on key collisions."""
        pass

    def popup_options(self) -> dict[str, Any]:
        return {}

    def get_config(self) -> ProviderConfig | None:
        return self.configurations.find(self.provider_name)

    def redirect_uri(self, config: ProviderConfig) -> str:
        return config.redirect_uri or default_redirect_uri(self.settings.site_url, self.provider_name)

    def get_authorization_url(self, config: ProviderConfig, state: str) -> str:
        """Build the full authorization URL for a login attempt."""
        params = {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": self.redirect_uri(config),
            "state": state,
        }
        return f"{self.authorize_url(config)}?{urlencode(params)}"

    def request_credential(
        self,
        launcher: LoginLauncher,
        options: dict[str, Any] | None = None,
    ) -> Future:
        """Start a login attempt.

        Configuration errors are delivered through the returned future rather
        than raised; in that case the launcher is never called.

        Args:
            launcher: Takes the browser to the provider
            options: Optional 'login_style' and 'redirect_url'

        Returns:
            Future resolving to a CredentialHandle, or failing with OAuthError
        """
        options = options or {}
        completion: Future = Future()

        config = self.get_config()
        if config is None:
            logger.warning("Login requested for unconfigured service", service=self.provider_name)
            completion.set_exception(ConfigurationMissing(self.provider_name))
            return completion

        try:
            self.authorize_url(config)
        except ConfigurationMissing as e:
            logger.warning("Login requested for incomplete configuration", service=self.provider_name)
            completion.set_exception(e)
            return completion

        try:
            login_style = resolve_login_style(config, options)
        except ValueError as e:
            logger.warning("Login requested with invalid login style", service=self.provider_name, error=str(e))
            completion.set_exception(ConfigurationMissing(self.provider_name, "invalid login style"))
            return completion

        credential_token = generate_credential_token()
        state = AuthorizationState(
            login_style=login_style,
            credential_token=credential_token,
            redirect_url=options.get("redirect_url"),
        )

        launcher.launch_login(
            LoginRequest(
                login_service=self.provider_name,
                login_style=login_style,
                login_url=self.get_authorization_url(config, encode_state(state)),
                credential_token=credential_token,
                popup_options=self.popup_options(),
                redirect_url=options.get("redirect_url"),
            ),
            completion,
        )
        return completion

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
            yield client

    async def exchange_code(
        self,
        config: ProviderConfig,
        query: dict[str, str],
    ) -> TokenResponse:
        """Exchange the callback's authorization code for an access token.

        Raises:
            TokenExchangeFailed: On transport errors, non-2xx responses or a
                provider-reported error. Never retried.
        """
        prefix = f"Failed to complete OAuth handshake with {self.display_name}."

        code = query.get("code")
        if not code:
            raise TokenExchangeFailed(f"{prefix} Missing authorization code")

        endpoint = self.token_endpoint(config)
        body = self.token_request_body(config, code, self.redirect_uri(config))
        logger.info("Token exchange started", service=self.provider_name, endpoint=endpoint)

        try:
            async with self._client() as client:
                response = await client.post(
                    endpoint,
                    data=body,
                    headers={"Accept": "application/json"},
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            detail = _provider_error(_json_or_none(e.response))
            raise TokenExchangeFailed(
                f"{prefix} {detail or e}",
                status_code=e.response.status_code,
                response_body=e.response.text,
            ) from e
        except httpx.HTTPError as e:
            raise TokenExchangeFailed(f"{prefix} {e}") from e
        except ValueError as e:
            raise TokenExchangeFailed(
                f"{prefix} Token response is not JSON",
                status_code=response.status_code,
                response_body=response.text,
            ) from e

        if not isinstance(data, dict):
            raise TokenExchangeFailed(
                f"{prefix} Unexpected token response",
                status_code=response.status_code,
                response_body=response.text,
            )

        detail = _provider_error(data)
        if detail:
            # The HTTP exchange worked but the provider refused the code
            raise TokenExchangeFailed(
                f"{prefix} {detail}",
                status_code=response.status_code,
                response_body=response.text,
            )

        return self.parse_token_response(data)

    def parse_token_response(self, data: dict[str, Any]) -> TokenResponse:
        """Map a successful token response body to a TokenResponse."""
        prefix = f"Failed to complete OAuth handshake with {self.display_name}."

        access_token = data.get("access_token")
        if not access_token:
            raise TokenExchangeFailed(f"{prefix} No access token in response")

        expires_in = data.get("expires_in")
        if expires_in is not None:
            try:
                expires_in = int(expires_in)
            except (TypeError, ValueError):
                raise TokenExchangeFailed(f"{prefix} Invalid expires_in: {expires_in!r}") from None

        return TokenResponse(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type"),
            raw=data,
        )

    async def fetch_identity(
        self,
        config: ProviderConfig,
        token: TokenResponse,
    ) -> dict[str, Any]:
        """Run the provider's profile requests in order and merge the results.

        Raises:
            ProfileFetchFailed: On transport errors, non-2xx responses or a
                payload that is not an object
        """
        identity: dict[str, Any] = {}
        headers = {
            "Authorization": f"Bearer {token.access_token}",
            "Accept": "application/json",
        }

        async with self._client() as client:
            for request in self.profile_requests(config, token):
                prefix = f"Failed to fetch {request.description} from {self.display_name}."
                logger.info(
                    "Fetching profile data",
                    service=self.provider_name,
                    description=request.description,
                )

                try:
                    response = await client.get(request.url, params=request.params, headers=headers)
                    response.raise_for_status()
                    payload = response.json()
                except httpx.HTTPStatusError as e:
                    detail = _provider_error(_json_or_none(e.response), request.envelope)
                    raise ProfileFetchFailed(
                        f"{prefix} {detail or e}",
                        status_code=e.response.status_code,
                        response_body=e.response.text,
                    ) from e
                except httpx.HTTPError as e:
                    raise ProfileFetchFailed(f"{prefix} {e}") from e
                except ValueError as e:
                    raise ProfileFetchFailed(
                        f"{prefix} Response is not JSON",
                        status_code=response.status_code,
                        response_body=response.text,
                    ) from e

                if request.envelope is not None and isinstance(payload, dict):
                    payload = payload.get(request.envelope)

                if not isinstance(payload, dict):
                    raise ProfileFetchFailed(
                        f"{prefix} Unexpected response shape",
                        status_code=response.status_code,
                        response_body=response.text,
                    )

                identity.update(payload)

        return identity

    @log_operation("OAuth callback")
    async def handle_callback(self, query: dict[str, str]) -> CallbackResult:
        """Complete a login from the provider's callback query.

        Registered with the host account system; its result becomes the user's
        service data for this provider.

        Raises:
            ConfigurationMissing: If the service is not configured
            TokenExchangeFailed: If the code could not be exchanged
            ProfileFetchFailed: If profile data could not be retrieved
        """
        config = self.get_config()
        if config is None:
            raise ConfigurationMissing(self.provider_name)

        service_token = login_service_var.set(self.provider_name)
        try:
            token = await self.exchange_code(config, query)
            identity = await self.fetch_identity(config, token)
            result = normalize_identity(token, identity, self.whitelisted_fields)
            logger.info(
                "Identity normalized",
                service=self.provider_name,
                fields=sorted(result.service_data),
                dropped=len(set(identity) - set(self.whitelisted_fields)),
            )
            return result
        finally:
            login_service_var.reset(service_token)

    def retrieve_credential(self, credential_token: str, credential_secret: str) -> CallbackResult | None:
        """Collect a finished login; see CredentialStore.retrieve."""
        return self.credentials.retrieve(credential_token, credential_secret)
