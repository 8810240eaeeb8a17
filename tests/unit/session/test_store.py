"""
Unit tests for token stores and the namespaced SessionStorage adapter.

Coverage:
* FileTokenStore atomic write (no lingering *.tmp) and durability across instances
* SessionStorage namespacing, typed round-trips and single-use pending consumption
* Corrupt entries are discarded instead of raising
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from custos.session.models import AuthTokens, PendingAuthorization, User
from custos.session.store import FileTokenStore, MemoryTokenStore, SessionStorage, TokenStore


# --------------------------------------------------------------------------- #
# raw stores                                                                  #
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize("factory", [lambda p: MemoryTokenStore(), lambda p: FileTokenStore(p / "s.json")])
def test_store_get_set_remove(tmp_path: Path, factory) -> None:
    store = factory(tmp_path)
    assert isinstance(store, TokenStore)
    assert store.get("k") is None
    store.set("k", "v")
    assert store.get("k") == "v"
    store.remove("k")
    store.remove("k")  # idempotent
    assert store.get("k") is None


def test_file_store_atomic_write_and_durability(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "session.json"
    FileTokenStore(path).set("custos_user", '{"id":"u"}')

    assert path.exists()
    assert not list(path.parent.glob("*.tmp"))
    # A new instance (e.g. after a full page navigation) sees the same data.
    assert FileTokenStore(path).get("custos_user") == '{"id":"u"}'


def test_file_store_ignores_unreadable_file(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")
    store = FileTokenStore(path)
    assert store.get("anything") is None
    store.set("k", "v")
    assert json.loads(path.read_text(encoding="utf-8")) == {"k": "v"}


# --------------------------------------------------------------------------- #
# SessionStorage                                                              #
# --------------------------------------------------------------------------- #
def test_keys_are_namespaced() -> None:
    raw = MemoryTokenStore({"unrelated": "app-data"})
    storage = SessionStorage(raw, prefix="custos_")
    storage.save_user(User(id="u-1", email="a@example.com"))
    storage.save_pending(PendingAuthorization(state="s"))

    assert set(raw.keys()) == {"unrelated", "custos_user", "custos_pending_authorization"}

    storage.clear()
    assert raw.keys() == ["unrelated"]


def test_tokens_round_trip_with_issued_at() -> None:
    storage = SessionStorage(MemoryTokenStore())
    tokens = AuthTokens(access_token="at", refresh_token="rt", expires_in=600, scope="openid")
    storage.save_tokens(tokens, issued_at=1_000.5)

    stored = storage.load_tokens()
    assert stored is not None
    assert stored.tokens == tokens
    assert stored.issued_at == 1_000.5
    assert stored.expires_at == 1_600.5


def test_user_round_trip_keeps_provider_fields() -> None:
    storage = SessionStorage(MemoryTokenStore())
    user = User.from_dict({"id": "u-1", "email": "a@example.com", "tenant": "acme"})
    storage.save_user(user)

    loaded = storage.load_user()
    assert loaded == user
    assert loaded is not None and loaded.extra == {"tenant": "acme"}


def test_consume_pending_is_single_use() -> None:
    storage = SessionStorage(MemoryTokenStore())
    pending = PendingAuthorization(state="s", code_verifier="v" * 43, code_challenge="c", created_at=5)
    storage.save_pending(pending)

    assert storage.consume_pending() == pending
    assert storage.consume_pending() is None


def test_corrupt_entries_are_treated_as_absent() -> None:
    raw = MemoryTokenStore(
        {
            "custos_tokens": "{broken",
            "custos_token_issued_at": "1000",
            "custos_user": '{"email": "no-id@example.com"}',
            "custos_pending_authorization": "[]",
        }
    )
    storage = SessionStorage(raw)
    assert storage.load_tokens() is None
    assert storage.load_user() is None
    assert storage.load_pending() is None


def test_tokens_without_issued_at_are_ignored() -> None:
    raw = MemoryTokenStore({"custos_tokens": '{"access_token": "at", "expires_in": 60}'})
    assert SessionStorage(raw).load_tokens() is None
