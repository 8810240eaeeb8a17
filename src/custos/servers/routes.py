"""Browser-facing login routes backed by a :class:`SessionController`.

Endpoints (mounted under ``base_path``, ``/auth`` by default)::

    GET  {base}/login     start a flow; 303 to the server or JSON {authorize_url}
    GET  {base}/callback  finish the flow and render a small HTML page
    POST {base}/logout    end the session (204)
    GET  {base}/status    {authenticated, state, user}
    GET  /health

Handlers only translate between HTTP and controller calls.  The status
endpoint never returns tokens, and logs carry the ``X-Correlation-ID`` of the
request instead of any flow secret.
"""

from __future__ import annotations

import html
import os

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from custos.session.api import HttpAuthServerClient
from custos.session.controller import SessionController
from custos.session.errors import CustosError
from custos.session.log_utils import get_session_logger
from custos.utils.environment import session_config_from_env, store_from_env

_CORRELATION_HEADER = "X-Correlation-ID"


def _html_page(title: str, body: str, status: int = 200) -> HTMLResponse:
    content = (
        "<!doctype html><html lang='en'>"
        "<head><meta charset='utf-8'><title>"
        f"{html.escape(title)}</title></head><body><h1>{html.escape(title)}</h1>"
        f"<p>{html.escape(body)}</p></body></html>"
    )
    return HTMLResponse(content, status_code=status)


def _wants_redirect(request: Request) -> bool:
    """``format`` wins; otherwise browsers (Accept: text/html) get a redirect."""
    fmt = request.query_params.get("format")
    if fmt in ("json", "redirect"):
        return fmt == "redirect"
    return "text/html" in (request.headers.get("accept") or "").lower()


async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def create_app(controller: SessionController, *, base_path: str = "/auth") -> Starlette:
    """Return a Starlette app exposing the login flow of *controller*."""
    base_log = get_session_logger(
        base_logger_name="custos.servers.routes",
        client_id=controller.config.client_id,
    )

    def _log(request: Request):
        return base_log.bind(correlation_id=request.headers.get(_CORRELATION_HEADER))

    async def _login(request: Request) -> Response:
        extra = {k: v for k, v in request.query_params.items() if k != "format"}
        try:
            authorize_url = await controller.start_login(extra or None)
        except CustosError as exc:
            return JSONResponse(exc.to_payload(), status_code=500)

        _log(request).info("Login started")
        if _wants_redirect(request):
            # 303 so the browser follows with a GET
            return RedirectResponse(authorize_url, status_code=303)
        return JSONResponse({"authorize_url": authorize_url})

    async def _callback(request: Request) -> Response:
        try:
            payload = await controller.complete_callback(str(request.url))
        except CustosError as exc:
            _log(request).warning("Callback rejected: %s", exc.error)
            return _html_page("Authorization failed", exc.error_description, 400)

        if payload is None:
            return _html_page("Missing parameters", "code or error missing", 400)

        _log(request).info("Callback accepted")
        return _html_page("Authorization successful", "You may close this window.")

    async def _logout(request: Request) -> Response:
        await controller.logout()
        _log(request).info("Logged out")
        return Response(status_code=204)

    async def _status(request: Request) -> Response:
        user = controller.get_user()
        return JSONResponse(
            {
                "authenticated": controller.is_authenticated(),
                "state": controller.state.value,
                "user": user.to_dict() if user else None,
            }
        )

    base = base_path.rstrip("/")
    return Starlette(
        routes=[
            Route("/health", health_check, methods=["GET"]),
            Route(f"{base}/login", _login, methods=["GET"]),
            Route(f"{base}/callback", _callback, methods=["GET"]),
            Route(f"{base}/logout", _logout, methods=["POST"]),
            Route(f"{base}/status", _status, methods=["GET"]),
        ]
    )


def app_from_env() -> Starlette:
    """ASGI factory wiring a controller from ``CUSTOS_*`` environment variables.

    Suitable for ``uvicorn --factory custos.servers.routes:app_from_env``.
    """
    config = session_config_from_env()
    controller = SessionController(
        config,
        store=store_from_env(),
        api=HttpAuthServerClient(config.auth_server_base_url),
    )
    return create_app(controller, base_path=os.getenv("CUSTOS_BASE_PATH", "/auth"))
