"""Authorization-server client used by the session controller.

The controller only depends on the :class:`AuthServerClient` protocol.
:class:`HttpAuthServerClient` is the stock implementation over
:class:`httpx.AsyncClient`; tests inject a client built on
:class:`httpx.MockTransport`.

Response normalisation
----------------------
Some deployments wrap payloads as ``{"data": {...}}`` while others answer
flat.  :func:`normalize_token_response` and :func:`normalize_user_response`
accept both; when ``data`` is present **and** is an object, the wrapped shape
wins and top-level keys are ignored.

Failures are typed: transport problems raise
:class:`~custos.session.errors.NetworkFailure`, non-2xx answers raise
:class:`~custos.session.errors.AuthServerRejected` carrying the server's
``error`` / ``error_description``.
"""

from __future__ import annotations

import logging
from typing import Any, Final, Mapping, Protocol, runtime_checkable

import httpx

from custos.session.errors import AuthServerRejected, NetworkFailure
from custos.session.models import AuthTokens, User

_LOG = logging.getLogger("custos.session.api")

TOKEN_PATH: Final[str] = "/oauth/token"
USERINFO_PATH: Final[str] = "/oauth/userinfo"
REVOKE_PATH: Final[str] = "/oauth/revoke"
INTROSPECT_PATH: Final[str] = "/oauth/introspect"


# --------------------------------------------------------------------------- #
# Response adapters                                                           #
# --------------------------------------------------------------------------- #
def _unwrap(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise ValueError("expected a JSON object")
    inner = payload.get("data")
    if isinstance(inner, Mapping):
        return inner
    return payload


def normalize_token_response(payload: Any) -> AuthTokens:
    """Build :class:`AuthTokens` from a wrapped or flat token response."""
    data = _unwrap(payload)
    if not data.get("access_token"):
        raise ValueError("token response missing access_token")
    return AuthTokens.from_dict(data)


def normalize_user_response(payload: Any) -> User:
    """Build :class:`User` from a wrapped or flat userinfo response."""
    return User.from_dict(_unwrap(payload))


def _error_fields(resp: httpx.Response) -> tuple[str | None, str | None]:
    try:
        body = resp.json()
    except ValueError:
        return None, None
    if not isinstance(body, Mapping):
        return None, None
    error = body.get("error")
    description = body.get("error_description") or body.get("message")
    return (
        str(error) if error else None,
        str(description) if description else None,
    )


# --------------------------------------------------------------------------- #
# Public interface                                                            #
# --------------------------------------------------------------------------- #
@runtime_checkable
class AuthServerClient(Protocol):
    """The five network operations the controller needs."""

    async def exchange_code(
        self,
        code: str,
        client_id: str,
        redirect_uri: str,
        code_verifier: str | None = None,
        client_secret: str | None = None,
    ) -> AuthTokens: ...

    async def refresh(
        self,
        refresh_token: str,
        client_id: str,
        client_secret: str | None = None,
    ) -> AuthTokens: ...

    async def revoke(self, access_token: str) -> None: ...

    async def fetch_user(self, access_token: str) -> User: ...

    async def validate(self, access_token: str) -> bool: ...


class HttpAuthServerClient(AuthServerClient):
    """:class:`AuthServerClient` speaking JSON over HTTP via ``httpx``."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                resp = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            _LOG.warning("%s %s failed: %s", method, path, exc.__class__.__name__)
            raise NetworkFailure(f"Request to {path} failed: {exc}") from exc

        if not resp.is_success:
            error, description = _error_fields(resp)
            _LOG.info("%s %s rejected with HTTP %s", method, path, resp.status_code)
            raise AuthServerRejected(
                resp.status_code, error=error, error_description=description
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            raise AuthServerRejected(
                resp.status_code,
                error="invalid_response",
                error_description="Authorization server returned a non-JSON body.",
            ) from None

    async def _token_request(self, body: dict[str, str]) -> AuthTokens:
        resp = await self._request(
            "POST", TOKEN_PATH, json=body, headers={"Accept": "application/json"}
        )
        try:
            return normalize_token_response(self._json(resp))
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthServerRejected(
                resp.status_code, error="invalid_response", error_description=str(exc)
            ) from exc

    async def exchange_code(
        self,
        code: str,
        client_id: str,
        redirect_uri: str,
        code_verifier: str | None = None,
        client_secret: str | None = None,
    ) -> AuthTokens:
        body: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "redirect_uri": redirect_uri,
        }
        if code_verifier:
            body["code_verifier"] = code_verifier
        if client_secret:
            body["client_secret"] = client_secret  # noqa: S105
        return await self._token_request(body)

    async def refresh(
        self,
        refresh_token: str,
        client_id: str,
        client_secret: str | None = None,
    ) -> AuthTokens:
        body: dict[str, str] = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
        }
        if client_secret:
            body["client_secret"] = client_secret  # noqa: S105
        return await self._token_request(body)

    async def revoke(self, access_token: str) -> None:
        await self._request(
            "POST", REVOKE_PATH, headers={"Authorization": f"Bearer {access_token}"}
        )

    async def fetch_user(self, access_token: str) -> User:
        resp = await self._request(
            "GET", USERINFO_PATH, headers={"Authorization": f"Bearer {access_token}"}
        )
        try:
            return normalize_user_response(self._json(resp))
        except ValueError as exc:
            raise AuthServerRejected(
                resp.status_code, error="invalid_response", error_description=str(exc)
            ) from exc

    async def validate(self, access_token: str) -> bool:
        resp = await self._request(
            "POST",
            INTROSPECT_PATH,
            json={"token": access_token},
            headers={"Accept": "application/json"},
        )
        try:
            return bool(_unwrap(self._json(resp)).get("active"))
        except ValueError:
            return False
