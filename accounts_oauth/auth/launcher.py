"""Login launching.

The authorization initiator builds the provider URL and hands it to a launcher,
which owns the browser side of the flow (popup window or full-page redirect).
Completion is reported through a future that resolves exactly once: with a
CredentialHandle on success, or with an OAuthError on failure.
"""

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Protocol

from accounts_oauth.auth.state import LoginStyle
from accounts_oauth.errors import InvalidState, OAuthError

# Matches the lifetime of a provider consent screen
DEFAULT_LOGIN_TTL_SECONDS = 300


@dataclass(frozen=True)
class CredentialHandle:
    """Token and secret the client presents to collect a login result."""

    credential_token: str
    credential_secret: str


@dataclass
class LoginRequest:
    """Everything a launcher needs to take the browser to the provider."""

    login_service: str
    login_style: LoginStyle
    login_url: str
    credential_token: str
    popup_options: dict[str, Any] = field(default_factory=dict)
    # Where a redirect-style login sends the browser when it finishes
    redirect_url: str | None = None


class LoginLauncher(Protocol):
    """Takes the browser through the provider's consent screen."""

    def launch_login(self, request: LoginRequest, completion: Future) -> None:
        ...


@dataclass
class _PendingLogin:
    request: LoginRequest
    completion: Future
    created_at: float


class PendingLogins:
    """Launched logins awaiting their callback, keyed by credential token.

    Each entry can be consumed once, which makes the state parameter single use.
    Entries whose callback never arrives expire after ttl_seconds and their
    futures fail with InvalidState.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_LOGIN_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._pending: dict[str, _PendingLogin] = {}
        self._lock = threading.Lock()

    def add(self, request: LoginRequest, completion: Future) -> None:
        with self._lock:
            expired = self._purge_expired()
            self._pending[request.credential_token] = _PendingLogin(request, completion, time.monotonic())
        _expire(expired)

    def consume(self, credential_token: str) -> tuple[LoginRequest, Future] | None:
        with self._lock:
            expired = self._purge_expired()
            pending = self._pending.pop(credential_token, None)
        _expire(expired)
        if pending is None:
            return None
        return pending.request, pending.completion

    def __len__(self) -> int:
        with self._lock:
            expired = self._purge_expired()
            count = len(self._pending)
        _expire(expired)
        return count

    def _purge_expired(self) -> list[_PendingLogin]:
        cutoff = time.monotonic() - self.ttl_seconds
        expired = [t for t, p in self._pending.items() if p.created_at < cutoff]
        return [self._pending.pop(t) for t in expired]


def _expire(expired: list[_PendingLogin]) -> None:
    for pending in expired:
        fail(pending.completion, InvalidState("Login expired before its callback arrived"))


def complete(completion: Future, handle: CredentialHandle) -> None:
    """Resolve a login future with its credential handle."""
    if not completion.done():
        completion.set_result(handle)


def fail(completion: Future, error: OAuthError) -> None:
    """Resolve a login future with an error."""
    if not completion.done():
        completion.set_exception(error)


class RedirectLauncher:
    """Launcher for the HTTP surface.

    Registers the login as pending and remembers the request so the route can
    send the browser to the provider.
    """

    def __init__(self, pending: PendingLogins):
        self.pending = pending
        self.request: LoginRequest | None = None

    def launch_login(self, request: LoginRequest, completion: Future) -> None:
        self.pending.add(request, completion)
        self.request = request
