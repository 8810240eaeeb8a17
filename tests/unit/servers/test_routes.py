"""Unit tests for the /auth/* endpoints: content negotiation, callback pages, status."""

from __future__ import annotations

import urllib.parse

import httpx
import pytest

from custos.servers.routes import create_app
from custos.session.controller import SessionController
from custos.session.models import SessionConfig
from custos.session.store import MemoryTokenStore
from fakes import BASE_URL, REDIRECT_URI, FakeAuthServer, FakeClock

# --------------------------------------------------------------------------- #
# Fixtures                                                                    #
# --------------------------------------------------------------------------- #
@pytest.fixture()
def api() -> FakeAuthServer:
    return FakeAuthServer()


@pytest.fixture()
def controller(api: FakeAuthServer):
    ctrl = SessionController(
        SessionConfig(client_id="c1", redirect_uri=REDIRECT_URI, auth_server_base_url=BASE_URL),
        store=MemoryTokenStore(),
        api=api,
        clock=FakeClock(),
    )
    yield ctrl
    ctrl.destroy()


@pytest.fixture()
async def client(controller: SessionController):
    """Async HTTP client bound to the Starlette app."""
    transport = httpx.ASGITransport(app=create_app(controller))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _state(authorize_url: str) -> str:
    return urllib.parse.parse_qs(urllib.parse.urlparse(authorize_url).query)["state"][0]


# --------------------------------------------------------------------------- #
# /auth/login                                                                 #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_html_accept_redirect(client: httpx.AsyncClient, controller: SessionController):
    """Accept: text/html with no explicit format should trigger HTTP redirect."""
    resp = await client.get("/auth/login", headers={"Accept": "text/html"})
    assert resp.status_code == 303
    location = resp.headers["location"]
    assert location.startswith(f"{BASE_URL}/authorize?")
    assert _state(location) == controller.pending_state()


@pytest.mark.anyio
async def test_json_accept_returns_json(client: httpx.AsyncClient):
    resp = await client.get("/auth/login", headers={"Accept": "application/json"})
    assert resp.status_code == 200
    assert resp.json()["authorize_url"].startswith(f"{BASE_URL}/authorize?")


@pytest.mark.anyio
async def test_format_param_overrides_accept(client: httpx.AsyncClient):
    resp = await client.get("/auth/login?format=json", headers={"Accept": "text/html"})
    assert resp.status_code == 200
    assert "authorize_url" in resp.json()

    resp = await client.get(
        "/auth/login?format=redirect", headers={"Accept": "application/json"}
    )
    assert resp.status_code == 303


@pytest.mark.anyio
async def test_extra_query_params_forwarded(client: httpx.AsyncClient):
    resp = await client.get("/auth/login?format=json&prompt=consent")
    query = urllib.parse.parse_qs(urllib.parse.urlparse(resp.json()["authorize_url"]).query)
    assert query["prompt"] == ["consent"]
    assert "format" not in query


# --------------------------------------------------------------------------- #
# /auth/callback                                                              #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_callback_success_then_status(client: httpx.AsyncClient):
    start = await client.get("/auth/login?format=json")
    state = _state(start.json()["authorize_url"])

    resp = await client.get(f"/auth/callback?code=abc&state={state}")
    assert resp.status_code == 200
    assert "Authorization successful" in resp.text

    status = await client.get("/auth/status")
    assert status.json() == {
        "authenticated": True,
        "state": "authenticated",
        "user": {"id": "u-1", "email": "ada@example.com", "name": "Ada"},
    }


@pytest.mark.anyio
async def test_callback_state_mismatch_is_400(client: httpx.AsyncClient, api: FakeAuthServer):
    await client.get("/auth/login?format=json")

    resp = await client.get("/auth/callback?code=abc&state=forged")

    assert resp.status_code == 400
    assert "State parameter mismatch." in resp.text
    assert api.calls == []


@pytest.mark.anyio
async def test_callback_error_description_is_escaped(client: httpx.AsyncClient):
    resp = await client.get(
        "/auth/callback",
        params={"error": "access_denied", "error_description": "<script>x</script>"},
    )
    assert resp.status_code == 400
    assert "<script>" not in resp.text
    assert "&lt;script&gt;" in resp.text


@pytest.mark.anyio
async def test_callback_without_code_is_400(client: httpx.AsyncClient):
    resp = await client.get("/auth/callback")
    assert resp.status_code == 400
    assert "Missing parameters" in resp.text


# --------------------------------------------------------------------------- #
# /auth/logout, /auth/status, /health                                         #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_logout_returns_204_and_clears_session(
    client: httpx.AsyncClient, api: FakeAuthServer
):
    start = await client.get("/auth/login?format=json")
    await client.get(f"/auth/callback?code=abc&state={_state(start.json()['authorize_url'])}")

    resp = await client.post("/auth/logout")

    assert resp.status_code == 204
    assert api.names()[-1] == "revoke"
    status = (await client.get("/auth/status")).json()
    assert status == {"authenticated": False, "state": "idle", "user": None}


@pytest.mark.anyio
async def test_status_never_exposes_tokens(client: httpx.AsyncClient):
    start = await client.get("/auth/login?format=json")
    await client.get(f"/auth/callback?code=abc&state={_state(start.json()['authorize_url'])}")

    body = (await client.get("/auth/status")).text
    assert "at-1" not in body
    assert "rt-1" not in body


@pytest.mark.anyio
async def test_health(client: httpx.AsyncClient):
    resp = await client.get("/health")
    assert resp.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_custom_base_path(controller: SessionController):
    transport = httpx.ASGITransport(app=create_app(controller, base_path="/oauth2"))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        assert (await ac.get("/oauth2/status")).status_code == 200
        assert (await ac.get("/auth/status")).status_code == 404
