"""Test configuration and fixtures."""

from urllib.parse import parse_qs

import httpx
import pytest

from accounts_oauth.auth.credentials import CredentialStore
from accounts_oauth.auth.providers.fiware_provider import FiwareProvider
from accounts_oauth.auth.providers.imgur_provider import ImgurProvider
from accounts_oauth.auth.service_configuration import ProviderConfig, ServiceConfigurations
from accounts_oauth.config import Settings

FIWARE_ROOT = "https://idm.example.org"
SITE_URL = "https://app.example.com"


class FakeProviderAPI:
    """Routes requests to canned responses and records what was sent.

    routes maps (method, path) to an httpx.Response, a dict (sent as JSON with
    status 200), or an exception instance to raise.
    """

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def form(self, index: int = 0) -> dict[str, str]:
        """Decoded form body of a recorded request."""
        body = parse_qs(self.requests[index].content.decode())
        return {k: v[0] for k, v in body.items()}


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        site_url=SITE_URL,
        oauth_secret_key="test-oauth-secret-key",
        fiware_client_id="",
        fiware_secret="",
        fiware_root_url="",
        imgur_client_id="",
        imgur_secret="",
    )


@pytest.fixture
def fiware_config():
    return ProviderConfig(
        service="fiware",
        client_id="fiware-client",
        secret="fiware-secret",
        redirect_uri=f"{SITE_URL}/_oauth/fiware",
        root_url=FIWARE_ROOT,
    )


@pytest.fixture
def imgur_config():
    return ProviderConfig(
        service="imgur",
        client_id="imgur-client",
        secret="imgur-secret",
    )


@pytest.fixture
def configurations(fiware_config, imgur_config):
    return ServiceConfigurations([fiware_config, imgur_config])


@pytest.fixture
def credentials():
    return CredentialStore()


@pytest.fixture
def fiware_api():
    return FakeProviderAPI(
        {
            ("POST", "/oauth2/token"): {
                "access_token": "fiware-access",
                "refresh_token": "fiware-refresh",
                "expires_in": 3600,
                "token_type": "Bearer",
            },
            ("GET", "/user"): {
                "id": "demo-user",
                "displayName": "Demo user",
                "email": "demo@fiware.org",
                "roles": [],
                "organizations": [],
            },
        }
    )


@pytest.fixture
def imgur_api():
    return FakeProviderAPI(
        {
            ("POST", "/oauth2/token"): {
                "access_token": "imgur-access",
                "refresh_token": "imgur-refresh",
                "expires_in": 315360000,
                "token_type": "bearer",
                "account_id": 384077,
                "account_username": "joshTest",
            },
            ("GET", "/3/account/joshTest"): {
                "data": {
                    "id": 384077,
                    "url": "joshTest",
                    "bio": "A real hoot",
                    "reputation": 15303,
                    "created": 1376951504,
                    "pro_expiration": False,
                    "email": "old@example.com",
                },
                "success": True,
                "status": 200,
            },
            ("GET", "/3/account/joshTest/settings"): {
                "data": {
                    "email": "josh@imgur.com",
                    "high_quality": True,
                    "public_images": False,
                    "album_privacy": "secret",
                    "active_emails": [],
                },
                "success": True,
                "status": 200,
            },
        }
    )


@pytest.fixture
def fiware(configurations, credentials, settings, fiware_api):
    return FiwareProvider(configurations, credentials, settings, fiware_api.client())


@pytest.fixture
def imgur(configurations, credentials, settings, imgur_api):
    return ImgurProvider(configurations, credentials, settings, imgur_api.client())
