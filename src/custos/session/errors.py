"""Exception types raised by the session core.

Only lightweight, **data-carrying** exceptions live here so that web/CLI layers
can transform them into HTTP responses or user-friendly messages.  Every
exception exposes an OAuth-style ``error`` code plus a human readable
``error_description``; :meth:`CustosError.to_payload` is what gets published
on the event bus.
"""

from __future__ import annotations


class CustosError(RuntimeError):
    """Base class for every failure surfaced by the session controller."""

    default_error = "custos_error"
    default_description = "Authentication failed."

    def __init__(
        self,
        message: str | None = None,
        *,
        error: str | None = None,
        error_description: str | None = None,
    ) -> None:
        description = error_description or message or self.default_description
        super().__init__(message or description)
        self.error: str = error or self.default_error
        self.error_description: str = description

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {
            "error": self.error,
            "error_description": self.error_description,
        }


class AuthorizationDenied(CustosError):
    """The authorization server redirected back with an ``error`` parameter."""

    default_error = "access_denied"
    default_description = "Authorization was denied."


class StateMismatch(CustosError):
    """The callback ``state`` does not match the one saved at login."""

    default_error = "invalid_state"
    default_description = "State parameter mismatch."


class NoPendingAuthorization(CustosError):
    """A callback arrived but no login flow is in flight (expired or replayed)."""

    default_error = "state_not_found"
    default_description = (
        "No saved state found. Authentication session may have expired."
    )


class MissingCodeVerifier(CustosError):
    default_error = "code_verifier_not_found"
    default_description = "Code verifier not found. Authentication cannot continue."


class NoRefreshToken(CustosError):
    default_error = "no_refresh_token"
    default_description = "No refresh token available."


class TokenExchangeFailed(CustosError):
    """The token endpoint rejected an authorization-code or refresh exchange."""

    default_error = "token_exchange_failed"
    default_description = "Failed to exchange code for tokens."


class UserFetchFailed(CustosError):
    default_error = "user_fetch_failed"
    default_description = "Failed to get user info."


class NetworkFailure(CustosError):
    """Transport-level failure: the authorization server was not reached."""

    default_error = "network_error"
    default_description = "Could not reach the authorization server."


class AuthServerRejected(CustosError):
    """The authorization server answered with a non-success HTTP status."""

    default_error = "server_error"
    default_description = "The authorization server rejected the request."

    def __init__(
        self,
        status_code: int,
        *,
        error: str | None = None,
        error_description: str | None = None,
    ) -> None:
        super().__init__(
            error=error or f"http_{status_code}",
            error_description=error_description
            or f"Authorization server returned HTTP {status_code}.",
        )
        self.status_code: int = status_code


class RandomSourceUnavailable(CustosError):
    default_error = "random_source_unavailable"
    default_description = "No cryptographically secure random source is available."


class ClientFailure(CustosError):
    """An injected auth-server client raised something other than a CustosError."""

    default_error = "client_error"
    default_description = "The authorization server client failed unexpectedly."
