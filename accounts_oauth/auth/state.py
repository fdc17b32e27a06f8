"""Login style and state parameter handling.

The state parameter round-trips through the provider's authorization redirect.
It carries the login style and the single-use credential token so the callback
can tell how to answer and which pending login it completes.
"""

import base64
import binascii
import json
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any

from accounts_oauth.auth.service_configuration import ProviderConfig
from accounts_oauth.errors import InvalidState


class LoginStyle(str, Enum):
    """How the browser is taken to the provider."""

    POPUP = "popup"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class AuthorizationState:
    """Decoded contents of the state parameter."""

    login_style: LoginStyle
    credential_token: str
    redirect_url: str | None = None


def generate_credential_token() -> str:
    """Fresh random token correlating an authorization request with its callback."""
    return secrets.token_urlsafe(32)


def resolve_login_style(config: ProviderConfig, options: dict[str, Any] | None = None) -> LoginStyle:
    """Pick the login style: caller option, then service default, then popup."""
    options = options or {}
    style = options.get("login_style") or config.login_style or LoginStyle.POPUP.value
    try:
        return LoginStyle(style)
    except ValueError:
        raise ValueError(f"Invalid login style: {style!r}") from None


def encode_state(state: AuthorizationState) -> str:
    """Encode state as URL-safe base64 JSON."""
    payload = {
        "loginStyle": state.login_style.value,
        "credentialToken": state.credential_token,
    }
    if state.redirect_url:
        payload["redirectUrl"] = state.redirect_url
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_state(raw: str | None) -> AuthorizationState:
    """Decode a state parameter produced by encode_state.

    Raises:
        InvalidState: If the parameter is missing or malformed
    """
    if not raw:
        raise InvalidState("Missing state parameter")
    try:
        # Restore padding some providers strip from query values
        padded = raw + "=" * (-len(raw) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError):
        raise InvalidState("Malformed state parameter") from None

    if not isinstance(payload, dict):
        raise InvalidState("Malformed state parameter")

    token = payload.get("credentialToken")
    if not isinstance(token, str) or not token:
        raise InvalidState("State parameter has no credential token")

    try:
        login_style = LoginStyle(payload.get("loginStyle"))
    except ValueError:
        raise InvalidState("State parameter has an unknown login style") from None

    return AuthorizationState(
        login_style=login_style,
        credential_token=token,
        redirect_url=payload.get("redirectUrl"),
    )
