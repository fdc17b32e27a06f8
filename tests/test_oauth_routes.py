"""Tests for the OAuth HTTP routes."""

from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from accounts_oauth.auth.launcher import CredentialHandle
from accounts_oauth.auth.providers.registry import build_registry
from accounts_oauth.auth.service_configuration import ServiceConfigurations
from accounts_oauth.auth.state import AuthorizationState, LoginStyle, encode_state
from accounts_oauth.errors import InvalidState, OAuthError, ProfileFetchFailed, TokenExchangeFailed
from accounts_oauth.main import create_app

from conftest import SITE_URL


@pytest.fixture
def app(settings, configurations, credentials, fiware_api, imgur_api):
    def route(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.imgur.com":
            return imgur_api(request)
        return fiware_api(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(route))
    registry = build_registry(settings, configurations, credentials, http_client)
    return create_app(settings=settings, registry=registry)


@pytest.fixture
def client(app):
    with TestClient(app, follow_redirects=False) as client:
        yield client


def _start_login(client, service, **params):
    response = client.get(f"/auth/login/{service}", params=params)
    assert response.status_code == 302
    query = parse_qs(urlparse(response.headers["location"]).query)
    return query["state"][0]


class TestProviderRoutes:
    """Tests for listing and configure routes."""

    def test_list_providers(self, client):
        response = client.get("/auth/providers")
        assert response.status_code == 200
        names = [p["name"] for p in response.json()["providers"]]
        assert names == ["fiware", "imgur"]

    def test_configure_dialog(self, client):
        response = client.get("/auth/configure/imgur")
        assert response.status_code == 200
        body = response.json()
        assert body["site_url"] == SITE_URL
        assert body["fields"] == [
            {"property": "clientId", "label": "Client Id"},
            {"property": "secret", "label": "Client Secret"},
        ]

    def test_unknown_service(self, client):
        assert client.get("/auth/configure/github").status_code == 404
        assert client.get("/auth/login/github").status_code == 404

    def test_request_id_header(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestLoginRoute:
    """Tests for starting a login."""

    def test_redirects_to_provider(self, client, app):
        response = client.get("/auth/login/fiware")

        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert location.netloc == "idm.example.org"
        assert location.path == "/oauth2/authorize"
        assert len(app.state.pending_logins) == 1

    def test_unconfigured_service(self, settings, credentials):
        registry = build_registry(settings, ServiceConfigurations(), credentials)
        app = create_app(settings=settings, registry=registry)
        with TestClient(app, follow_redirects=False) as client:
            response = client.get("/auth/login/fiware")

        assert response.status_code == 400
        assert len(app.state.pending_logins) == 0

    def test_foreign_redirect_url_rejected(self, client):
        response = client.get("/auth/login/fiware", params={"redirect_url": "https://evil.example.net/"})
        assert response.status_code == 400


class TestCallbackRoute:
    """Tests for the provider callback."""

    def test_redirect_login_end_to_end(self, client, app):
        state = _start_login(client, "fiware", redirect_url=f"{SITE_URL}/welcome")
        token = next(iter(app.state.pending_logins._pending))
        completion = app.state.pending_logins._pending[token].completion

        response = client.get("/_oauth/fiware", params={"code": "auth-code", "state": state})

        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert f"{location.scheme}://{location.netloc}{location.path}" == f"{SITE_URL}/welcome"
        params = parse_qs(location.query)
        assert params["credentialToken"] == [token]

        handle = completion.result(timeout=0)
        assert handle == CredentialHandle(token, params["credentialSecret"][0])

        collected = client.post(
            "/auth/credential/fiware",
            json={"credential_token": token, "credential_secret": handle.credential_secret},
        )
        assert collected.status_code == 200
        body = collected.json()
        assert body["service_data"]["id"] == "demo-user"
        assert body["options"] == {"profile": {}}

        again = client.post(
            "/auth/credential/fiware",
            json={"credential_token": token, "credential_secret": handle.credential_secret},
        )
        assert again.status_code == 404

    def test_popup_login_returns_credentials(self, client):
        state = _start_login(client, "imgur", login_style="popup")

        response = client.get("/_oauth/imgur", params={"code": "auth-code", "state": state})

        assert response.status_code == 200
        body = response.json()
        collected = client.post(
            "/auth/credential/imgur",
            json={
                "credential_token": body["credentialToken"],
                "credential_secret": body["credentialSecret"],
            },
        )
        assert collected.json()["options"] == {"profile": {"name": "joshTest"}}

    def test_state_is_single_use(self, client):
        state = _start_login(client, "fiware", login_style="popup")

        assert client.get("/_oauth/fiware", params={"code": "c", "state": state}).status_code == 200
        replay = client.get("/_oauth/fiware", params={"code": "c", "state": state})
        assert replay.status_code == 400

    def test_unknown_state_rejected(self, client):
        state = encode_state(AuthorizationState(LoginStyle.POPUP, "never-issued"))
        response = client.get("/_oauth/fiware", params={"code": "c", "state": state})
        assert response.status_code == 400

    def test_malformed_state_rejected(self, client):
        response = client.get("/_oauth/fiware", params={"code": "c", "state": "%%%"})
        assert response.status_code == 400

    def test_state_for_other_service_rejected(self, client, app):
        state = _start_login(client, "imgur", login_style="popup")
        completion = next(iter(app.state.pending_logins._pending.values())).completion

        response = client.get("/_oauth/fiware", params={"code": "c", "state": state})

        assert response.status_code == 400
        assert completion.done()

    def test_token_failure_is_generic_and_fails_future(self, client, app, fiware_api):
        fiware_api.routes[("POST", "/oauth2/token")] = {"error": "invalid_grant"}
        state = _start_login(client, "fiware", login_style="popup")
        completion = next(iter(app.state.pending_logins._pending.values())).completion

        response = client.get("/_oauth/fiware", params={"code": "c", "state": state})

        assert response.status_code == 400
        assert response.json() == {"detail": "Login failed"}
        assert isinstance(completion.exception(timeout=0), TokenExchangeFailed)

    def test_profile_failure_fails_future(self, client, app, imgur_api):
        imgur_api.routes[("GET", "/3/account/joshTest")] = httpx.Response(500, text="down")
        state = _start_login(client, "imgur", login_style="popup")
        completion = next(iter(app.state.pending_logins._pending.values())).completion

        response = client.get("/_oauth/imgur", params={"code": "c", "state": state})

        assert response.status_code == 400
        assert isinstance(completion.exception(timeout=0), ProfileFetchFailed)

    def test_declined_consent(self, client, app, fiware_api):
        state = _start_login(client, "fiware", login_style="popup")

        response = client.get("/_oauth/fiware", params={"error": "access_denied", "state": state})

        assert response.status_code == 400
        assert fiware_api.requests == []

    def test_missing_id_is_a_gateway_error(self, client, fiware_api):
        fiware_api.routes[("GET", "/user")] = {"displayName": "No id"}
        state = _start_login(client, "fiware", login_style="popup")

        response = client.get("/_oauth/fiware", params={"code": "c", "state": state})

        assert response.status_code == 502

    def test_altered_redirect_url_rejected(self, client, app):
        state = _start_login(client, "fiware", redirect_url=f"{SITE_URL}/welcome")
        token = next(iter(app.state.pending_logins._pending))
        completion = app.state.pending_logins._pending[token].completion
        altered = encode_state(
            AuthorizationState(LoginStyle.REDIRECT, token, "https://evil.example.net/steal")
        )

        response = client.get("/_oauth/fiware", params={"code": "c", "state": altered})

        assert response.status_code == 400
        assert "location" not in response.headers
        assert isinstance(completion.exception(timeout=0), InvalidState)
        # The login is spent; the untouched state cannot be used afterwards
        replay = client.get("/_oauth/fiware", params={"code": "c", "state": state})
        assert replay.status_code == 400

    def test_altered_login_style_rejected(self, client, app):
        _start_login(client, "fiware", login_style="popup")
        token = next(iter(app.state.pending_logins._pending))
        altered = encode_state(AuthorizationState(LoginStyle.REDIRECT, token))

        response = client.get("/_oauth/fiware", params={"code": "c", "state": altered})

        assert response.status_code == 400

    def test_redirect_goes_to_recorded_url(self, client):
        state = _start_login(client, "fiware")

        response = client.get("/_oauth/fiware", params={"code": "c", "state": state})

        assert response.status_code == 302
        assert response.headers["location"].startswith(f"{SITE_URL}?credentialToken=")

    def test_non_2xx_token_error_fails_future_with_provider_error(self, client, app, fiware_api):
        fiware_api.routes[("POST", "/oauth2/token")] = httpx.Response(400, json={"error": "invalid_grant"})
        state = _start_login(client, "fiware", login_style="popup")
        completion = next(iter(app.state.pending_logins._pending.values())).completion

        response = client.get("/_oauth/fiware", params={"code": "c", "state": state})

        assert response.status_code == 400
        error = completion.exception(timeout=0)
        assert isinstance(error, TokenExchangeFailed)
        assert "invalid_grant" in error.message

    def test_unexpected_error_fails_future(self, client, app):
        state = _start_login(client, "fiware", login_style="popup")
        completion = next(iter(app.state.pending_logins._pending.values())).completion
        provider = app.state.registry.get("fiware")

        with patch.object(provider, "handle_callback", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                client.get("/_oauth/fiware", params={"code": "c", "state": state})

        error = completion.exception(timeout=0)
        assert isinstance(error, OAuthError)
        assert "boom" in error.message


class TestPendingLoginExpiry:
    """Tests for abandoned logins."""

    def test_ttl_comes_from_settings(self, settings, configurations, credentials):
        settings = settings.model_copy(update={"pending_login_ttl_seconds": 30})
        app = create_app(settings=settings, registry=build_registry(settings, configurations, credentials))
        assert app.state.pending_logins.ttl_seconds == 30

    def test_abandoned_logins_do_not_accumulate(self, client, app):
        pending = app.state.pending_logins
        for _ in range(20):
            _start_login(client, "fiware")
        for entry in pending._pending.values():
            entry.created_at -= pending.ttl_seconds + 1
        stale = [entry.completion for entry in pending._pending.values()]

        _start_login(client, "fiware")

        assert len(pending) == 1
        assert all(isinstance(c.exception(timeout=0), InvalidState) for c in stale)
