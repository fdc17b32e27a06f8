"""Tests for the pending credential store."""

from unittest.mock import patch

from accounts_oauth.auth.credentials import CredentialStore
from accounts_oauth.auth.identity import CallbackResult


def _result():
    return CallbackResult(service_data={"access_token": "at", "expires_at": 1, "id": 7})


class TestCredentialStore:
    """Tests for store/retrieve."""

    def test_retrieve_with_matching_secret(self):
        store = CredentialStore()
        result = _result()
        secret = store.store("token-1", result)

        assert store.retrieve("token-1", secret) is result

    def test_retrieve_only_once(self):
        store = CredentialStore()
        secret = store.store("token-1", _result())

        assert store.retrieve("token-1", secret) is not None
        assert store.retrieve("token-1", secret) is None
        assert len(store) == 0

    def test_wrong_secret_keeps_credential(self):
        store = CredentialStore()
        secret = store.store("token-1", _result())

        assert store.retrieve("token-1", "guess") is None
        assert store.retrieve("token-1", secret) is not None

    def test_unknown_token(self):
        assert CredentialStore().retrieve("nope", "nope") is None

    def test_secrets_are_unique(self):
        store = CredentialStore()
        assert store.store("a", _result()) != store.store("b", _result())

    def test_expired_credential_is_dropped(self):
        store = CredentialStore(ttl_seconds=60)
        with patch("accounts_oauth.auth.credentials.time.monotonic", return_value=1000.0):
            secret = store.store("token-1", _result())
        with patch("accounts_oauth.auth.credentials.time.monotonic", return_value=1061.0):
            assert store.retrieve("token-1", secret) is None
