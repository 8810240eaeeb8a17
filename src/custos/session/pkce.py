"""PKCE (Proof Key for Code Exchange) and anti-forgery material.

RFC 7636 defines PKCE to protect public OAuth clients.  The mechanism relies on
a *code verifier* (random high-entropy string) generated at the beginning of
the flow and a *code challenge* derived from that verifier that is sent to the
authorization endpoint.  Both ``S256`` and ``plain`` transformations are
supported; ``S256`` is the default everywhere.

The ``state`` value used for CSRF protection is produced here as well so that
every piece of randomness in the flow comes from :mod:`secrets`.

This module intentionally performs **no logging** of states, verifiers or
challenges.
"""

from __future__ import annotations

import base64
import secrets
from hashlib import sha256
from typing import Final, Literal

from custos.session.clock import Clock, default_clock
from custos.session.errors import RandomSourceUnavailable
from custos.session.models import PendingAuthorization

ChallengeMethod = Literal["S256", "plain"]

# RFC-7636 §4.1 mandates the verifier length between 43 and 128 characters.
_MIN_VERIFIER_LEN: Final[int] = 43
_MAX_VERIFIER_LEN: Final[int] = 128
_STATE_BYTES: Final[int] = 32
_ALLOWED_CHARS: Final[str] = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "0123456789"
    "-._~"
)


def _b64url(data: bytes) -> str:
    """Base64-URL encode *without* padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def new_state() -> str:
    """Return a fresh, unpredictable ``state`` value (256 bits of entropy)."""
    try:
        return _b64url(secrets.token_bytes(_STATE_BYTES))
    except NotImplementedError as exc:
        raise RandomSourceUnavailable() from exc


def generate_code_verifier(length: int = _MAX_VERIFIER_LEN) -> str:
    """Generate a high-entropy code verifier.

    Parameters
    ----------
    length:
        Desired length between 43 and 128 characters (default 128).

    Returns
    -------
    str
        The generated code verifier.
    """
    if not _MIN_VERIFIER_LEN <= length <= _MAX_VERIFIER_LEN:
        raise ValueError("code verifier length must be 43-128 characters")
    try:
        return "".join(secrets.choice(_ALLOWED_CHARS) for _ in range(length))
    except NotImplementedError as exc:
        raise RandomSourceUnavailable() from exc


def code_challenge_for(verifier: str, method: ChallengeMethod = "S256") -> str:
    """Derive the code challenge sent to the authorization endpoint.

    ``S256`` yields the base64url-encoded SHA-256 digest without padding,
    ``plain`` returns the verifier unchanged.
    """
    if method == "S256":
        return _b64url(sha256(verifier.encode("ascii")).digest())
    if method == "plain":
        return verifier
    raise ValueError(f"unsupported code_challenge_method: {method!r}")


def new_pending_authorization(
    *,
    use_pkce: bool,
    method: ChallengeMethod = "S256",
    clock: Clock = default_clock,
) -> PendingAuthorization:
    """Build the per-attempt record persisted between redirect and callback."""
    state = new_state()
    verifier: str | None = None
    challenge: str | None = None
    if use_pkce:
        verifier = generate_code_verifier()
        challenge = code_challenge_for(verifier, method)
    return PendingAuthorization(
        state=state,
        code_verifier=verifier,
        code_challenge=challenge,
        created_at=int(clock()),
    )
