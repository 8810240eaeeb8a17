"""URL helpers for the authorization redirect and the callback.

``decode`` flattens the query string *and* the fragment of a redirect URL
into one mapping so that both the code flow (query delivery) and the implicit
flow (fragment delivery) can be inspected the same way.  Fragment entries
override query entries of the same key.
"""

from __future__ import annotations

import logging
from typing import Final, Mapping
from urllib.parse import parse_qsl, unquote_plus, urlencode, urlsplit

from custos.session.models import PendingAuthorization, SessionConfig

_LOG = logging.getLogger("custos.session.urls")

AUTHORIZE_PATH: Final[str] = "/authorize"

# Parameters the client must control; caller extras never replace these.
_PROTOCOL_PARAMS: Final[frozenset[str]] = frozenset(
    {
        "response_type",
        "client_id",
        "redirect_uri",
        "scope",
        "state",
        "code_challenge",
        "code_challenge_method",
    }
)


def _split_pairs(raw: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in raw.split("&"):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        if key:
            params[unquote_plus(key)] = unquote_plus(value)
    return params


def _manual_decode(url: str) -> dict[str, str]:
    """Best-effort fallback used when :func:`urlsplit` rejects *url*."""
    rest, _, fragment = url.partition("#")
    _, _, query = rest.partition("?")
    params = _split_pairs(query)
    params.update(_split_pairs(fragment))
    return params


def decode(url: str) -> dict[str, str]:
    """Return query and fragment parameters of *url* as a flat mapping.

    Never raises.  Values are percent-decoded exactly once and parameters
    without a value map to ``""``.
    """
    try:
        parts = urlsplit(url)
        params = dict(parse_qsl(parts.query, keep_blank_values=True))
        if parts.fragment:
            params.update(parse_qsl(parts.fragment, keep_blank_values=True))
        return params
    except ValueError:
        _LOG.debug("Falling back to manual query parsing for malformed URL")
        return _manual_decode(url)


def has_callback_params(url: str) -> bool:
    """Return *True* if *url* looks like an authorization callback."""
    params = decode(url)
    return bool(params.get("code") or params.get("error"))


def build_authorize_url(
    config: SessionConfig,
    pending: PendingAuthorization,
    extra_params: Mapping[str, str] | None = None,
) -> str:
    """Return the authorization-endpoint URL for *pending*."""
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "scope": config.scope_string,
        "state": pending.state,
    }
    if config.use_pkce and pending.code_challenge:
        params["code_challenge"] = pending.code_challenge
        params["code_challenge_method"] = config.code_challenge_method

    for key, value in (extra_params or {}).items():
        if key in _PROTOCOL_PARAMS:
            _LOG.debug("Ignoring caller override of protocol parameter %s", key)
            continue
        params[key] = value

    return f"{config.auth_server_base_url}{AUTHORIZE_PATH}?{urlencode(params)}"
