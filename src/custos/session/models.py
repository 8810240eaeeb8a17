"""Typed, immutable records used by the session core."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Final, Literal, Mapping, Sequence

DEFAULT_SCOPE: Final[tuple[str, ...]] = ("openid", "profile")
DEFAULT_EXPIRY_MARGIN: Final[int] = 300


def normalize_scope(scope: str | Sequence[str] | None) -> tuple[str, ...]:
    """Return *scope* as an ordered tuple, dropping empties and duplicates."""
    if not scope:
        return DEFAULT_SCOPE
    items = scope.split() if isinstance(scope, str) else list(scope)
    seen: dict[str, None] = {}
    for item in items:
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return tuple(seen) or DEFAULT_SCOPE


def normalize_url(url: str) -> str:
    return url.rstrip("/")


@dataclass(frozen=True, slots=True, kw_only=True)
class SessionConfig:
    """Client registration and flow options, resolved once at construction."""

    client_id: str
    redirect_uri: str
    auth_server_base_url: str
    client_secret: str | None = None
    scope: tuple[str, ...] = DEFAULT_SCOPE
    use_pkce: bool = True
    code_challenge_method: Literal["S256", "plain"] = "S256"
    expiry_margin_seconds: int = DEFAULT_EXPIRY_MARGIN
    storage_prefix: str = "custos_"

    def __post_init__(self) -> None:
        for name in ("client_id", "redirect_uri", "auth_server_base_url"):
            if not getattr(self, name):
                raise ValueError(f"{name} is required")
        if self.code_challenge_method not in ("S256", "plain"):
            raise ValueError(
                f"unsupported code_challenge_method: {self.code_challenge_method!r}"
            )
        if self.expiry_margin_seconds < 0:
            raise ValueError("expiry_margin_seconds must not be negative")
        object.__setattr__(
            self, "auth_server_base_url", normalize_url(self.auth_server_base_url)
        )
        object.__setattr__(self, "scope", normalize_scope(self.scope))
        # An empty secret means a public client.
        object.__setattr__(self, "client_secret", self.client_secret or None)

    @property
    def scope_string(self) -> str:
        return " ".join(self.scope)

    @property
    def is_confidential(self) -> bool:
        return self.client_secret is not None


@dataclass(frozen=True, slots=True)
class PendingAuthorization:
    """Artifacts of one in-flight login attempt, kept across the redirect."""

    state: str
    code_verifier: str | None = None
    code_challenge: str | None = None
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PendingAuthorization:
        return cls(
            state=str(data["state"]),
            code_verifier=data.get("code_verifier"),
            code_challenge=data.get("code_challenge"),
            created_at=int(data.get("created_at", 0)),
        )


@dataclass(frozen=True, slots=True)
class AuthTokens:
    """Token set as returned by the token endpoint."""

    access_token: str
    expires_in: int
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scope: str | None = None

    def with_fallback_refresh_token(self, previous: str | None) -> AuthTokens:
        """Keep *previous* when the server did not rotate the refresh token."""
        if self.refresh_token or not previous:
            return self
        return replace(self, refresh_token=previous)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AuthTokens:
        return cls(
            access_token=str(data["access_token"]),
            expires_in=int(data.get("expires_in") or 0),
            refresh_token=data.get("refresh_token") or None,
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope") or None,
        )


@dataclass(frozen=True, slots=True)
class StoredTokens:
    """Snapshot of an :class:`AuthTokens` set with the controller's receipt time."""

    tokens: AuthTokens
    issued_at: float

    @property
    def expires_at(self) -> float:
        return self.issued_at + self.tokens.expires_in

    def is_expired(self, now: float, *, margin: int = 0) -> bool:
        """Return *True* once *now* is within *margin* seconds of expiry."""
        return now >= self.expires_at - margin


_USER_FIELDS: Final[tuple[str, ...]] = ("id", "email", "name", "picture", "email_verified")


@dataclass(frozen=True, slots=True)
class User:
    """Profile record from the userinfo endpoint; unknown keys land in ``extra``."""

    id: str
    email: str
    name: str | None = None
    picture: str | None = None
    email_verified: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        for key in _USER_FIELDS:
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> User:
        if "id" not in data and "sub" not in data:
            raise ValueError("user profile is missing an id")
        verified = data.get("email_verified", data.get("emailVerified"))
        extra = {
            k: v
            for k, v in data.items()
            if k not in _USER_FIELDS and k not in ("sub", "emailVerified")
        }
        return cls(
            id=str(data.get("id", data.get("sub"))),
            email=str(data.get("email") or ""),
            name=data.get("name"),
            picture=data.get("picture"),
            email_verified=None if verified is None else bool(verified),
            extra=extra,
        )


class SessionState(str, enum.Enum):
    IDLE = "idle"
    AUTHORIZING = "authorizing"
    AWAITING_CALLBACK = "awaiting_callback"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True, slots=True)
class AuthState:
    """Point-in-time view of the session handed to application code."""

    is_authenticated: bool
    user: User | None
    tokens: AuthTokens | None
