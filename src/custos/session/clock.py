"""Injectable wall-clock source.

Token lifetimes are expressed in seconds relative to the moment the controller
received them, so every component that compares against "now" (expiry checks,
the renewal timer, ``created_at`` stamps) takes a :class:`Clock` argument.
Tests substitute a settable fake; production code uses :func:`default_clock`.

>>> from custos.session.clock import default_clock
>>> isinstance(default_clock(), float)
True
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Zero-argument callable giving the current UNIX time in seconds."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    return time.time()
