"""Context-carrying loggers for the session core and the HTTP layer.

Log records only ever receive the context fields listed in
:data:`CONTEXT_FIELDS`; anything else passed to :func:`get_session_logger`
is dropped.  None of them is secret:

- ``client_id``      public OAuth client identifier
- ``session_id``     per-controller id, cut to its first 6 characters
- ``correlation_id`` request id from the ``X-Correlation-ID`` header

>>> log = get_session_logger(client_id="spa-client", session_id="9f1c2e7d44")
>>> log.extra
{'client_id': 'spa-client', 'session_id': '9f1c2e'}
"""

from __future__ import annotations

import logging
from typing import Any, Final, MutableMapping

CONTEXT_FIELDS: Final[tuple[str, ...]] = ("client_id", "session_id", "correlation_id")
_SESSION_ID_CHARS: Final[int] = 6


class _SessionLoggerAdapter(logging.LoggerAdapter):
    """Attach the whitelisted context without clobbering call-site extras."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        merged = dict(self.extra or {})
        merged.update(kwargs.get("extra") or {})
        kwargs["extra"] = merged
        return msg, kwargs

    def bind(self, **context: Any) -> _SessionLoggerAdapter:
        """Return a sibling adapter with *context* layered on top."""
        return _SessionLoggerAdapter(self.logger, _clean({**(self.extra or {}), **context}))


def _clean(context: dict[str, Any]) -> dict[str, Any]:
    cleaned = {k: context[k] for k in CONTEXT_FIELDS if context.get(k) is not None}
    if "session_id" in cleaned:
        cleaned["session_id"] = str(cleaned["session_id"])[:_SESSION_ID_CHARS]
    return cleaned


def get_session_logger(
    *,
    base_logger_name: str = "custos.session",
    client_id: str | None = None,
    session_id: str | None = None,
    correlation_id: str | None = None,
) -> _SessionLoggerAdapter:
    """Return a LoggerAdapter pre-filled with session context."""
    return _SessionLoggerAdapter(
        logging.getLogger(base_logger_name),
        _clean(
            {
                "client_id": client_id,
                "session_id": session_id,
                "correlation_id": correlation_id,
            }
        ),
    )
