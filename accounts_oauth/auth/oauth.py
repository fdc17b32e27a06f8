"""OAuth Router.

HTTP surface over the provider registry: starts logins, receives provider
callbacks and hands finished logins to the client that started them.
"""

from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from accounts_oauth.auth.launcher import (
    CredentialHandle,
    PendingLogins,
    RedirectLauncher,
    complete,
    fail,
)
from accounts_oauth.auth.providers.base import OAuthProvider
from accounts_oauth.auth.providers.registry import ProviderRegistry
from accounts_oauth.auth.service_configuration import configuration_fields
from accounts_oauth.auth.state import LoginStyle, decode_state
from accounts_oauth.config import Settings
from accounts_oauth.core.logging import get_logger
from accounts_oauth.errors import ConfigurationMissing, InvalidState, OAuthError

logger = get_logger(__name__)
router = APIRouter(tags=["oauth"])


class CredentialRequest(BaseModel):
    credential_token: str
    credential_secret: str


def _registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def _pending_logins(request: Request) -> PendingLogins:
    return request.app.state.pending_logins


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _get_provider(request: Request, service: str) -> OAuthProvider:
    provider = _registry(request).get(service)
    if provider is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown login service: {service}",
        )
    return provider


@router.get("/auth/providers")
async def get_available_providers(request: Request):
    """List login services and whether they are configured."""
    return {"providers": _registry(request).list_providers()}


@router.get("/auth/configure/{service}")
async def get_configure_dialog(service: str, request: Request):
    """Fields an administrator fills in to configure a service."""
    _get_provider(request, service)
    try:
        fields = configuration_fields(service)
    except ConfigurationMissing as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {
        "service": service,
        "site_url": _settings(request).site_url,
        "fields": [{"property": f.property, "label": f.label} for f in fields],
    }


@router.get("/auth/login/{service}")
async def oauth_login(
    service: str,
    request: Request,
    login_style: LoginStyle = LoginStyle.REDIRECT,
    redirect_url: str | None = None,
):
    """Start a login and send the browser to the provider."""
    provider = _get_provider(request, service)
    launcher = RedirectLauncher(_pending_logins(request))

    options = {"login_style": login_style.value}
    if redirect_url:
        # Only send finished logins back into this site
        site_url = _settings(request).site_url
        if redirect_url != site_url and not redirect_url.startswith(f"{site_url}/"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="redirect_url must be on this site",
            )
        options["redirect_url"] = redirect_url

    completion = provider.request_credential(launcher, options)
    if completion.done() and completion.exception() is not None:
        error = completion.exception()
        logger.warning("Login not started", service=service, error=str(error))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Service {service} is not configured",
        )

    return RedirectResponse(launcher.request.login_url, status_code=status.HTTP_302_FOUND)


@router.get("/_oauth/{service}")
async def oauth_callback(service: str, request: Request):
    """Handle the provider's redirect back after consent."""
    provider = _get_provider(request, service)
    query = dict(request.query_params)

    try:
        state = decode_state(query.get("state"))
    except InvalidState as e:
        logger.warning("Rejected callback", service=service, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid state parameter")

    pending = _pending_logins(request).consume(state.credential_token)
    if pending is None:
        logger.warning("Rejected callback for unknown or used state", service=service)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unknown or already used state parameter",
        )
    login_request, completion = pending

    if login_request.login_service != service:
        fail(completion, InvalidState("Callback arrived for a different service"))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid state parameter")

    # The state travels through the browser; only the recorded request is trusted
    if (state.login_style, state.redirect_url) != (login_request.login_style, login_request.redirect_url):
        logger.warning("Rejected callback with altered state", service=service)
        fail(completion, InvalidState("State parameter does not match the login request"))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid state parameter")

    if "error" in query:
        # User declined on the provider's consent screen
        error = OAuthError(f"{provider.display_name} login was not authorized: {query['error']}")
        logger.info("Login declined", service=service, error=query["error"])
        fail(completion, error)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Login failed")

    try:
        result = await provider.handle_callback(query)
    except OAuthError as e:
        logger.error(
            "Login failed",
            service=service,
            error_type=type(e).__name__,
            error=e.message,
            status_code=e.status_code,
            response_body=e.response_body,
        )
        fail(completion, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Login failed")
    except Exception as e:
        fail(completion, OAuthError(f"{provider.display_name} login failed unexpectedly: {e}"))
        raise

    if "id" not in result.service_data:
        logger.error(
            "Provider returned no id; check its field mapping",
            service=service,
            fields=sorted(result.service_data),
        )
        fail(completion, OAuthError(f"{provider.display_name} returned no user id"))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Login failed")

    credential_secret = provider.credentials.store(login_request.credential_token, result)
    handle = CredentialHandle(login_request.credential_token, credential_secret)
    complete(completion, handle)
    logger.info("Login completed", service=service, login_style=login_request.login_style.value)

    params = {
        "credentialToken": handle.credential_token,
        "credentialSecret": handle.credential_secret,
    }
    if login_request.login_style == LoginStyle.REDIRECT:
        target = login_request.redirect_url or _settings(request).site_url
        separator = "&" if "?" in target else "?"
        return RedirectResponse(f"{target}{separator}{urlencode(params)}", status_code=status.HTTP_302_FOUND)
    return params


@router.post("/auth/credential/{service}")
async def retrieve_credential(service: str, body: CredentialRequest, request: Request):
    """Collect a finished login. Each credential can be collected once."""
    provider = _get_provider(request, service)
    result = provider.retrieve_credential(body.credential_token, body.credential_secret)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No pending credential")
    return {"service_data": result.service_data, "options": result.options}
