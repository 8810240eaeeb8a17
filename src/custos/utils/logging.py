"""Logging helpers shared by the session core and the HTTP layer."""

from __future__ import annotations


def mask_sensitive(value: str | None, keep_chars: int = 4) -> str:
    """Return *value* truncated to its first *keep_chars* characters plus ``****``.

    >>> mask_sensitive("abcdef123456", 4)
    'abcd****'
    >>> mask_sensitive(None)
    'None'
    """
    if value is None:
        return "None"
    if len(value) <= keep_chars:
        return "*" * len(value)
    return f"{value[:keep_chars]}****"
