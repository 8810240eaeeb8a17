"""Fixtures for session-core unit tests: fake clock, fake auth server, controller."""

from __future__ import annotations

from typing import Any, Callable, Iterator

import pytest

from custos.session.controller import SessionController
from custos.session.models import SessionConfig
from custos.session.store import MemoryTokenStore
from fakes import BASE_URL, REDIRECT_URI, FakeAuthServer, FakeClock


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def api() -> FakeAuthServer:
    return FakeAuthServer()


@pytest.fixture()
def store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture()
def config() -> SessionConfig:
    return SessionConfig(
        client_id="c1",
        redirect_uri=REDIRECT_URI,
        auth_server_base_url=BASE_URL,
        scope=["openid", "email"],
    )


@pytest.fixture()
def make_controller(
    config: SessionConfig, store: MemoryTokenStore, api: FakeAuthServer, clock: FakeClock
) -> Iterator[Callable[..., SessionController]]:
    """Factory building controllers over the shared fakes; destroyed on teardown."""
    created: list[SessionController] = []

    def _make(**overrides: Any) -> SessionController:
        cfg = overrides.pop("config", config)
        kwargs: dict[str, Any] = {"store": store, "api": api, "clock": clock}
        kwargs.update(overrides)
        ctrl = SessionController(cfg, **kwargs)
        created.append(ctrl)
        return ctrl

    yield _make
    for ctrl in created:
        ctrl.destroy()


@pytest.fixture()
def controller(make_controller: Callable[..., SessionController]) -> SessionController:
    return make_controller()
