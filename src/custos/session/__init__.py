"""Session core package.

This namespace hosts the **HTTP-agnostic** building blocks of an OAuth 2.0
authorization-code + PKCE client session.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
pkce
    State, code verifier and code challenge generation.
urls
    Callback URL decoding and authorize URL construction.
models
    Immutable dataclasses for configuration, tokens and user profile.
errors
    Exception types raised by the session controller.
events
    Typed publish/subscribe bus for lifecycle notifications.
store
    Key/value persistence interface and implementations.
api
    Authorization-server client interface and its ``httpx`` implementation.
scheduler
    Proactive token renewal timer.
controller
    The session controller tying everything together.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock  # noqa: F401
from .models import (  # noqa: F401
    AuthState,
    AuthTokens,
    PendingAuthorization,
    SessionConfig,
    SessionState,
    StoredTokens,
    User,
)
from .errors import (  # noqa: F401
    AuthorizationDenied,
    AuthServerRejected,
    ClientFailure,
    CustosError,
    MissingCodeVerifier,
    NetworkFailure,
    NoPendingAuthorization,
    NoRefreshToken,
    RandomSourceUnavailable,
    StateMismatch,
    TokenExchangeFailed,
    UserFetchFailed,
)
from .pkce import code_challenge_for, generate_code_verifier, new_state  # noqa: F401
from .urls import build_authorize_url, decode, has_callback_params  # noqa: F401
from .events import AuthEvent, AuthEventType, EventBus, LoginPayload  # noqa: F401
from .store import FileTokenStore, MemoryTokenStore, SessionStorage, TokenStore  # noqa: F401
from .api import (  # noqa: F401
    AuthServerClient,
    HttpAuthServerClient,
    normalize_token_response,
    normalize_user_response,
)
from .scheduler import ExpiryScheduler  # noqa: F401
from .controller import SessionController  # noqa: F401
from .log_utils import get_session_logger  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "default_clock",
    # models
    "AuthState",
    "AuthTokens",
    "PendingAuthorization",
    "SessionConfig",
    "SessionState",
    "StoredTokens",
    "User",
    # errors
    "AuthorizationDenied",
    "AuthServerRejected",
    "ClientFailure",
    "CustosError",
    "MissingCodeVerifier",
    "NetworkFailure",
    "NoPendingAuthorization",
    "NoRefreshToken",
    "RandomSourceUnavailable",
    "StateMismatch",
    "TokenExchangeFailed",
    "UserFetchFailed",
    # pkce
    "code_challenge_for",
    "generate_code_verifier",
    "new_state",
    # urls
    "build_authorize_url",
    "decode",
    "has_callback_params",
    # events
    "AuthEvent",
    "AuthEventType",
    "EventBus",
    "LoginPayload",
    # store
    "FileTokenStore",
    "MemoryTokenStore",
    "SessionStorage",
    "TokenStore",
    # api
    "AuthServerClient",
    "HttpAuthServerClient",
    "normalize_token_response",
    "normalize_user_response",
    # scheduler / controller
    "ExpiryScheduler",
    "SessionController",
    # logging helpers
    "get_session_logger",
]
