"""Token metadata and identity normalization.

Turns a token response plus provider profile data into the service-data record
the host account system stores against its user.
"""

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass
class TokenResponse:
    """Result of exchanging an authorization code."""

    access_token: str
    expires_in: int | None = None  # seconds
    refresh_token: str | None = None
    token_type: str | None = None
    username: str | None = None  # only some providers return it here
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class CallbackResult:
    """What a provider hands to the host account system.

    service_data ends up on the user record under the service's name. options
    carries the initial profile for newly created users.
    """

    service_data: dict[str, Any]
    options: dict[str, Any] = field(default_factory=dict)


def normalize_identity(
    token: TokenResponse,
    identity: dict[str, Any],
    whitelisted_fields: list[str],
    now_ms: int | None = None,
) -> CallbackResult:
    """Build the service-data record for one login.

    Only whitelisted fields are copied from the identity; everything else is
    dropped. No field is required here, so a missing "id" produces a record
    without one.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    service_data: dict[str, Any] = {
        "access_token": token.access_token,
        "expires_at": now_ms + 1000 * int(token.expires_in or 0),
    }
    if token.refresh_token:
        service_data["refresh_token"] = token.refresh_token

    service_data.update(
        {name: identity[name] for name in whitelisted_fields if name in identity}
    )

    profile: dict[str, Any] = {}
    if token.username:
        profile["name"] = token.username

    return CallbackResult(service_data=service_data, options={"profile": profile})
