"""
Exception classes for OAuth login integrations.

Every error is terminal for the login attempt that raised it. Provider response
bodies are kept on the exception for diagnostic logging and are never meant to be
shown to end users.
"""


class OAuthError(Exception):
    """Base exception for OAuth login errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body


class ConfigurationMissing(OAuthError):
    """No usable configuration for the requested service."""

    def __init__(self, service: str, detail: str | None = None):
        message = f"Service {service} not configured"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.service = service


class TokenExchangeFailed(OAuthError):
    """Exchanging the authorization code for an access token failed."""
    pass


class ProfileFetchFailed(OAuthError):
    """Retrieving profile data with the access token failed."""
    pass


class InvalidState(OAuthError):
    """The callback state parameter is malformed, unknown or already used."""
    pass
