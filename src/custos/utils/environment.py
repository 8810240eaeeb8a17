"""Build session configuration from ``CUSTOS_*`` environment variables."""

import logging
import os
from typing import Final, Mapping, Tuple

from custos.session.models import DEFAULT_EXPIRY_MARGIN, SessionConfig
from custos.session.store import FileTokenStore, MemoryTokenStore, TokenStore

logger = logging.getLogger("custos.utils.environment")

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")
_FALSY: Final[Tuple[str, ...]] = ("false", "0", "no", "n", "off")


def _truthy(value: str | None, default: bool) -> bool:
    raw = (value or "").strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return default


def _int(value: str | None, default: int, name: str) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %s", name, value, default)
        return default


def session_config_from_env(env: Mapping[str, str] | None = None) -> SessionConfig:
    """
    Return a :class:`SessionConfig` from the environment.

    Required: ``CUSTOS_CLIENT_ID``, ``CUSTOS_REDIRECT_URI`` and
    ``CUSTOS_AUTH_SERVER_URL``.  Missing values raise ``ValueError``.

    ``CUSTOS_CLIENT_SECRET`` should stay unset for public clients (browser,
    mobile, desktop); it is only sent to the token endpoint when present.
    """
    env = os.environ if env is None else env
    method = (env.get("CUSTOS_CODE_CHALLENGE_METHOD") or "S256").strip()
    return SessionConfig(
        client_id=(env.get("CUSTOS_CLIENT_ID") or "").strip(),
        client_secret=env.get("CUSTOS_CLIENT_SECRET") or None,
        redirect_uri=(env.get("CUSTOS_REDIRECT_URI") or "").strip(),
        auth_server_base_url=(env.get("CUSTOS_AUTH_SERVER_URL") or "").strip(),
        scope=env.get("CUSTOS_SCOPE") or (),
        use_pkce=_truthy(env.get("CUSTOS_USE_PKCE"), True),
        code_challenge_method=method,  # type: ignore[arg-type]
        expiry_margin_seconds=_int(
            env.get("CUSTOS_EXPIRY_MARGIN_SECONDS"),
            DEFAULT_EXPIRY_MARGIN,
            "CUSTOS_EXPIRY_MARGIN_SECONDS",
        ),
    )


def store_from_env(env: Mapping[str, str] | None = None) -> TokenStore:
    """
    Return a file-backed store when ``CUSTOS_STORAGE_PATH`` is set.

    Without it an in-memory store is used, which does **not** survive a
    process restart; a redirect-based login then only works within one run.
    """
    env = os.environ if env is None else env
    path = (env.get("CUSTOS_STORAGE_PATH") or "").strip()
    if path:
        return FileTokenStore(path)
    logger.info("CUSTOS_STORAGE_PATH not set; session data kept in memory only")
    return MemoryTokenStore()
