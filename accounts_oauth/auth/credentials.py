"""Pending credential store.

A finished login is parked here under its credential token together with a
freshly generated credential secret. The client that started the login proves
it owns the result by presenting both, and can collect it exactly once.
"""

import hmac
import secrets
import threading
import time
from dataclasses import dataclass

from accounts_oauth.auth.identity import CallbackResult

DEFAULT_TTL_SECONDS = 60


@dataclass
class _PendingCredential:
    secret: str
    result: CallbackResult
    created_at: float


class CredentialStore:
    """In-memory store for login results awaiting retrieval."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._pending: dict[str, _PendingCredential] = {}
        self._lock = threading.Lock()

    def store(self, credential_token: str, result: CallbackResult) -> str:
        """Park a login result; returns the credential secret."""
        credential_secret = secrets.token_urlsafe(32)
        with self._lock:
            self._purge_expired()
            self._pending[credential_token] = _PendingCredential(
                secret=credential_secret,
                result=result,
                created_at=time.monotonic(),
            )
        return credential_secret

    def retrieve(self, credential_token: str, credential_secret: str) -> CallbackResult | None:
        """Pop a login result if the secret matches and it has not expired."""
        with self._lock:
            self._purge_expired()
            pending = self._pending.get(credential_token)
            if pending is None:
                return None
            if not hmac.compare_digest(pending.secret, credential_secret):
                return None
            del self._pending[credential_token]
            return pending.result

    def __len__(self) -> int:
        return len(self._pending)

    def _purge_expired(self) -> None:
        cutoff = time.monotonic() - self.ttl_seconds
        expired = [t for t, p in self._pending.items() if p.created_at < cutoff]
        for token in expired:
            del self._pending[token]
