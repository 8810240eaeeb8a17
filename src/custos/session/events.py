"""In-process publish/subscribe for session lifecycle notifications.

Event variants and their payloads:

=================  ==========================================================
``login``          :class:`LoginPayload` (``user`` and ``tokens``)
``logout``         ``None``
``token-refresh``  :class:`~custos.session.models.AuthTokens`
``token-expired``  the :class:`~custos.session.errors.CustosError` that ended
                   the session
``error``          ``dict`` with ``error`` and ``error_description``
=================  ==========================================================

Delivery is synchronous and in registration order.  A failing handler raises
into whoever triggered the emission; the bus does not swallow it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable

from custos.session.models import AuthTokens, User

_LOG = logging.getLogger("custos.session.events")


class AuthEventType(str, enum.Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    TOKEN_REFRESH = "token-refresh"
    TOKEN_EXPIRED = "token-expired"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class LoginPayload:
    user: User
    tokens: AuthTokens


@dataclass(frozen=True, slots=True)
class AuthEvent:
    type: AuthEventType
    data: Any = None


Handler = Callable[[AuthEvent], Any]


def _coerce(event_type: AuthEventType | str) -> AuthEventType:
    try:
        return AuthEventType(event_type)
    except ValueError:
        raise ValueError(f"unknown auth event type: {event_type!r}") from None


class EventBus:
    """Typed event bus; one handler list per :class:`AuthEventType`."""

    def __init__(self) -> None:
        self._handlers: dict[AuthEventType, list[Handler]] = {}
        self._destroyed = False

    def on(self, event_type: AuthEventType | str, handler: Handler) -> None:
        """Register *handler*; registering the same handler again is a no-op."""
        handlers = self._handlers.setdefault(_coerce(event_type), [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: AuthEventType | str, handler: Handler) -> None:
        handlers = self._handlers.get(_coerce(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_type: AuthEventType | str, data: Any = None) -> None:
        if self._destroyed:
            return
        event = AuthEvent(type=_coerce(event_type), data=data)
        # Snapshot so handlers may (un)subscribe while being notified.
        for handler in list(self._handlers.get(event.type, ())):
            handler(event)
        _LOG.debug("Emitted %s event", event.type.value)

    def handler_count(self, event_type: AuthEventType | str) -> int:
        return len(self._handlers.get(_coerce(event_type), ()))

    def destroy(self) -> None:
        self._handlers.clear()
        self._destroyed = True
