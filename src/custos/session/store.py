"""Key/value persistence for session data.

This module introduces a *narrow* persistence interface (:class:`TokenStore`)
with two implementations and a typed adapter on top of it:

* :class:`MemoryTokenStore` – process-local ``dict``; tests and short-lived
  scripts.
* :class:`FileTokenStore` – a single JSON document on disk.  Writes use
  *temp-file + os.replace* so a crash never leaves a half-written file, and
  the data survives a full page navigation or process restart.
* :class:`SessionStorage` – namespaces every key under a prefix and knows how
  to (de)serialise tokens, the user profile and the pending authorization.

Stores are always injected; there is no module-level default instance, so two
controllers never share state by accident.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

from custos.session.models import AuthTokens, PendingAuthorization, StoredTokens, User

_LOG = logging.getLogger("custos.session.store")

TOKENS_KEY: Final[str] = "tokens"
ISSUED_AT_KEY: Final[str] = "token_issued_at"
USER_KEY: Final[str] = "user"
PENDING_KEY: Final[str] = "pending_authorization"

_SESSION_KEYS: Final[tuple[str, ...]] = (TOKENS_KEY, ISSUED_AT_KEY, USER_KEY, PENDING_KEY)


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class TokenStore(Protocol):
    """Minimal persistence contract consumed by the session controller."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


# --------------------------------------------------------------------------- #
# implementations                                                             #
# --------------------------------------------------------------------------- #


class MemoryTokenStore(TokenStore):
    """In-process store; contents are lost with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, separators=(",", ":"), sort_keys=True)
    os.replace(tmp, path)  # atomic on POSIX


class FileTokenStore(TokenStore):
    """JSON-file implementation of :class:`TokenStore`."""

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            _LOG.warning("Ignoring unreadable token store %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        _atomic_write(self.path, data)

    def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            _atomic_write(self.path, data)


# --------------------------------------------------------------------------- #
# typed adapter                                                               #
# --------------------------------------------------------------------------- #


class SessionStorage:
    """Namespaced, typed view over a :class:`TokenStore`."""

    def __init__(self, store: TokenStore, prefix: str = "custos_") -> None:
        self.store = store
        self.prefix = prefix

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _get_json(self, name: str) -> Any:
        raw = self.store.get(self._key(name))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            _LOG.warning("Discarding corrupt %s entry", name)
            return None

    def _set_json(self, name: str, value: Any) -> None:
        self.store.set(self._key(name), json.dumps(value, separators=(",", ":")))

    # ----- tokens ---------------------------------------------------------- #
    def save_tokens(self, tokens: AuthTokens, issued_at: float) -> None:
        self._set_json(TOKENS_KEY, tokens.to_dict())
        self.store.set(self._key(ISSUED_AT_KEY), repr(float(issued_at)))

    def load_tokens(self) -> StoredTokens | None:
        data = self._get_json(TOKENS_KEY)
        raw_issued = self.store.get(self._key(ISSUED_AT_KEY))
        if not isinstance(data, dict) or raw_issued is None:
            return None
        try:
            return StoredTokens(tokens=AuthTokens.from_dict(data), issued_at=float(raw_issued))
        except (KeyError, TypeError, ValueError):
            _LOG.warning("Discarding malformed token record")
            return None

    def delete_tokens(self) -> None:
        self.store.remove(self._key(TOKENS_KEY))
        self.store.remove(self._key(ISSUED_AT_KEY))

    # ----- user ------------------------------------------------------------ #
    def save_user(self, user: User) -> None:
        self._set_json(USER_KEY, user.to_dict())

    def load_user(self) -> User | None:
        data = self._get_json(USER_KEY)
        if not isinstance(data, dict):
            return None
        try:
            return User.from_dict(data)
        except ValueError:
            return None

    def delete_user(self) -> None:
        self.store.remove(self._key(USER_KEY))

    # ----- pending authorization ------------------------------------------ #
    def save_pending(self, pending: PendingAuthorization) -> None:
        self._set_json(PENDING_KEY, pending.to_dict())

    def load_pending(self) -> PendingAuthorization | None:
        data = self._get_json(PENDING_KEY)
        if not isinstance(data, dict):
            return None
        try:
            return PendingAuthorization.from_dict(data)
        except (KeyError, TypeError, ValueError):
            return None

    def delete_pending(self) -> None:
        self.store.remove(self._key(PENDING_KEY))

    def consume_pending(self) -> PendingAuthorization | None:
        """Return the pending record and delete it (single-use)."""
        pending = self.load_pending()
        self.delete_pending()
        return pending

    # ----- maintenance ----------------------------------------------------- #
    def clear(self) -> None:
        for name in _SESSION_KEYS:
            self.store.remove(self._key(name))
