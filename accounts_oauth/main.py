"""accounts-oauth - FastAPI application."""

from fastapi import FastAPI

from accounts_oauth.auth.launcher import PendingLogins
from accounts_oauth.auth.oauth import router as oauth_router
from accounts_oauth.auth.providers.registry import ProviderRegistry, build_registry
from accounts_oauth.config import Settings, get_settings
from accounts_oauth.core.logging import RequestLoggingMiddleware, setup_logging


def create_app(
    settings: Settings | None = None,
    registry: ProviderRegistry | None = None,
) -> FastAPI:
    """Create the application with its provider registry and pending logins."""
    settings = settings or get_settings()
    setup_logging(json_output=settings.log_json, level=settings.log_level)

    app = FastAPI(
        title="accounts-oauth",
        description="OAuth2 login with FIWARE and Imgur",
        docs_url=None if settings.is_production else "/docs",
    )
    app.state.settings = settings
    app.state.registry = registry or build_registry(settings)
    app.state.pending_logins = PendingLogins(ttl_seconds=settings.pending_login_ttl_seconds)

    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(oauth_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "providers": app.state.registry.names()}

    return app


app = create_app()
