"""Custos – OAuth 2.0 authorization-code + PKCE session client."""

from custos.session import SessionConfig, SessionController  # noqa: F401

__version__ = "0.4.0"

__all__ = ["SessionConfig", "SessionController", "__version__"]
