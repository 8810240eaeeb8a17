"""Proactive token renewal timer.

One :class:`ExpiryScheduler` belongs to one controller and holds at most one
outstanding timer, always derived from the token set currently held::

    fire_at = issued_at + expires_in - margin_seconds

Re-arming cancels the previous timer first.  :meth:`ExpiryScheduler.cancel`
only prevents a *future* fire; a callback that is already running (a refresh
in flight) is left alone.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from custos.session.clock import Clock, default_clock
from custos.session.models import DEFAULT_EXPIRY_MARGIN, AuthTokens

_LOG = logging.getLogger("custos.session.scheduler")


class ExpiryScheduler:
    """Single-owner asyncio timer that triggers ``on_fire`` before expiry."""

    def __init__(
        self,
        on_fire: Callable[[], Awaitable[None]],
        *,
        margin_seconds: int = DEFAULT_EXPIRY_MARGIN,
        clock: Clock = default_clock,
    ) -> None:
        self._on_fire = on_fire
        self.margin_seconds = margin_seconds
        self._clock = clock
        self._handle: asyncio.Handle | None = None
        self._fire_at: float | None = None
        self._running: set[asyncio.Task[None]] = set()

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def fire_at(self) -> float | None:
        return self._fire_at

    def arm(self, tokens: AuthTokens, issued_at: float, *, renewal: bool = False) -> bool:
        """Schedule renewal for *tokens*; return *False* if nothing was scheduled.

        With *renewal* (tokens that a refresh just produced) the margin is capped
        at half the token lifetime, so short-lived tokens are not refreshed
        again on the very next tick.

        Must be called from within a running event loop.
        """
        self.cancel()
        now = self._clock()
        expires_at = issued_at + tokens.expires_in
        if expires_at <= now:
            _LOG.debug("Token already expired; renewal not scheduled")
            return False

        margin = self.margin_seconds
        if renewal:
            margin = min(margin, tokens.expires_in // 2)
        fire_at = expires_at - margin
        delay = fire_at - now
        loop = asyncio.get_running_loop()
        if delay <= 0:
            self._handle = loop.call_soon(self._fire)
        else:
            self._handle = loop.call_later(delay, self._fire)
        self._fire_at = fire_at
        _LOG.debug("Token renewal scheduled in %.0fs", max(delay, 0.0))
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._fire_at = None

    def _fire(self) -> None:
        self._handle = None
        self._fire_at = None
        task = asyncio.ensure_future(self._on_fire())
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def drain(self) -> None:
        """Wait for callbacks that already fired to finish."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
