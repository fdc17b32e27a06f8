"""OAuth login: configuration, state handling, providers and HTTP routes."""
