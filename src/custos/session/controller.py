"""SessionController – authorization-code + PKCE session orchestration.

The controller composes the random-material helpers, the URL decoder, an
injected :class:`~custos.session.store.TokenStore`, an injected
:class:`~custos.session.api.AuthServerClient`, the :class:`EventBus` and the
:class:`ExpiryScheduler` into the session state machine::

    idle -> authorizing -> awaiting_callback -> authenticated -> idle
                                                  |  ^
                                                  +--+  (refresh)

Any unrecoverable failure returns the controller to its resting state
(``authenticated`` if a valid session is still stored, ``idle`` otherwise).

Every failure is raised to the caller **and** emitted as an ``error`` event.
Secrets (state, verifier, tokens, client secret) are never logged.
"""

from __future__ import annotations

import asyncio
import inspect
import secrets
import uuid
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from custos.session import urls
from custos.session.api import AuthServerClient
from custos.session.clock import Clock, default_clock
from custos.session.errors import (
    AuthorizationDenied,
    AuthServerRejected,
    ClientFailure,
    CustosError,
    MissingCodeVerifier,
    NoPendingAuthorization,
    NoRefreshToken,
    StateMismatch,
    TokenExchangeFailed,
    UserFetchFailed,
)
from custos.session.events import AuthEventType, EventBus, Handler, LoginPayload
from custos.session.log_utils import get_session_logger
from custos.session.models import AuthState, AuthTokens, SessionConfig, SessionState, User
from custos.session.pkce import new_pending_authorization
from custos.session.scheduler import ExpiryScheduler
from custos.session.store import SessionStorage, TokenStore
from custos.utils.logging import mask_sensitive

Navigator = Callable[[str], Any]

_T = TypeVar("_T")


def _same_state(received: str, saved: str) -> bool:
    return secrets.compare_digest(received.encode("utf-8"), saved.encode("utf-8"))


async def _guarded(call: Awaitable[_T]) -> _T:
    """Await an auth-server client call, mapping foreign exceptions to ClientFailure."""
    try:
        return await call
    except CustosError:
        raise
    except Exception as exc:
        raise ClientFailure(
            error_description=f"Authorization server client raised {type(exc).__name__}."
        ) from exc


def _retrieve_exception(task: asyncio.Task) -> None:
    # Every awaiting caller may have been cancelled; mark the outcome as seen.
    if not task.cancelled():
        task.exception()


class SessionController:
    """Owns one OAuth session: login flow, token lifecycle and notifications."""

    def __init__(
        self,
        config: SessionConfig,
        *,
        store: TokenStore,
        api: AuthServerClient,
        navigator: Navigator | None = None,
        clock: Clock = default_clock,
        bus: EventBus | None = None,
    ) -> None:
        self.config = config
        self._storage = SessionStorage(store, prefix=config.storage_prefix)
        self._api = api
        self._navigator = navigator
        self._clock = clock
        self._bus = bus or EventBus()
        self._scheduler = ExpiryScheduler(
            self._on_expiry_timer,
            margin_seconds=config.expiry_margin_seconds,
            clock=clock,
        )
        self._refresh_task: asyncio.Task[AuthTokens] | None = None
        # Bumped whenever the committed session is replaced or cleared.
        self._generation = 0
        self._log = get_session_logger(
            base_logger_name="custos.session.controller",
            client_id=config.client_id,
            session_id=uuid.uuid4().hex,
        )
        if config.is_confidential:
            self._log.warning(
                "client_secret configured: only use confidential credentials "
                "where the secret cannot be read by end users"
            )
        self._state = self._resting_state()

    # ------------------------------------------------------------------ #
    # State                                                              #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def scheduler(self) -> ExpiryScheduler:
        return self._scheduler

    def _resting_state(self) -> SessionState:
        if self.is_authenticated():
            return SessionState.AUTHENTICATED
        if self._storage.load_pending() is not None:
            return SessionState.AWAITING_CALLBACK
        return SessionState.IDLE

    def _fail(self, exc: CustosError) -> CustosError:
        """Publish *exc* as an ``error`` event and hand it back for raising."""
        self._log.warning("%s: %s", exc.error, exc.error_description)
        self._bus.emit(AuthEventType.ERROR, exc.to_payload())
        return exc

    # ------------------------------------------------------------------ #
    # Authorization flow                                                 #
    # ------------------------------------------------------------------ #
    async def start_login(self, extra_params: Mapping[str, str] | None = None) -> str:
        """Begin a new flow and hand the authorize URL to the navigator.

        Any previously pending flow of this controller is superseded.
        """
        self._state = SessionState.AUTHORIZING
        try:
            pending = new_pending_authorization(
                use_pkce=self.config.use_pkce,
                method=self.config.code_challenge_method,
                clock=self._clock,
            )
        except CustosError as exc:
            self._state = self._resting_state()
            self._fail(exc)
            raise

        self._storage.save_pending(pending)
        url = urls.build_authorize_url(self.config, pending, extra_params)
        self._state = SessionState.AWAITING_CALLBACK
        self._log.info("Starting authorization (pkce=%s)", self.config.use_pkce)

        if self._navigator is not None:
            result = self._navigator(url)
            if inspect.isawaitable(result):
                await result
        return url

    async def complete_callback(self, callback_url: str) -> LoginPayload | None:
        """Validate the redirect back from the server and establish the session.

        Returns ``None`` without side effects when *callback_url* carries no
        ``code`` (and no ``error``): not every visited URL is a callback.
        """
        params = urls.decode(callback_url)

        error = params.get("error")
        if error:
            self._storage.delete_pending()
            self._state = self._resting_state()
            raise self._fail(
                AuthorizationDenied(
                    error=error,
                    error_description=params.get("error_description") or error,
                )
            )

        code = params.get("code")
        if not code:
            return None

        # Read and delete in one step: a replayed callback finds nothing.
        pending = self._storage.consume_pending()
        if pending is None:
            self._state = self._resting_state()
            raise self._fail(NoPendingAuthorization())

        if not _same_state(params.get("state", ""), pending.state):
            self._state = self._resting_state()
            raise self._fail(StateMismatch())

        if self.config.use_pkce and not pending.code_verifier:
            self._state = self._resting_state()
            raise self._fail(MissingCodeVerifier())

        try:
            return await self._establish_session(code, pending.code_verifier)
        finally:
            if self._state is not SessionState.AUTHENTICATED:
                self._state = self._resting_state()

    async def _establish_session(self, code: str, code_verifier: str | None) -> LoginPayload:
        try:
            tokens = await _guarded(
                self._api.exchange_code(
                    code,
                    self.config.client_id,
                    self.config.redirect_uri,
                    code_verifier if self.config.use_pkce else None,
                    self.config.client_secret,
                )
            )
        except AuthServerRejected as exc:
            raise self._fail(
                TokenExchangeFailed(
                    error=exc.error, error_description=exc.error_description
                )
            ) from exc
        except CustosError as exc:
            self._fail(exc)
            raise
        issued_at = self._clock()

        try:
            user = await _guarded(self._api.fetch_user(tokens.access_token))
        except AuthServerRejected as exc:
            raise self._fail(
                UserFetchFailed(error=exc.error, error_description=exc.error_description)
            ) from exc
        except CustosError as exc:
            self._fail(exc)
            raise

        self._commit(tokens, issued_at, user)
        self._scheduler.arm(tokens, issued_at)
        self._state = SessionState.AUTHENTICATED
        self._log.info(
            "Session established for user %s (expires in %ss)",
            mask_sensitive(user.id),
            tokens.expires_in,
        )

        payload = LoginPayload(user=user, tokens=tokens)
        self._bus.emit(AuthEventType.LOGIN, payload)
        return payload

    def _commit(self, tokens: AuthTokens, issued_at: float, user: User) -> None:
        """Persist tokens and user together, or neither."""
        try:
            self._storage.save_tokens(tokens, issued_at)
            self._storage.save_user(user)
        except Exception:
            self._storage.delete_tokens()
            self._storage.delete_user()
            raise
        self._end_generation()

    # ------------------------------------------------------------------ #
    # Token lifecycle                                                    #
    # ------------------------------------------------------------------ #
    async def refresh(self) -> AuthTokens:
        """Renew the access token; concurrent callers share one exchange."""
        if self._refresh_task is None:
            task = asyncio.ensure_future(self._refresh_once())
            task.add_done_callback(_retrieve_exception)
            self._refresh_task = task
        return await asyncio.shield(self._refresh_task)

    def _superseded(self) -> NoRefreshToken:
        self._log.info("Discarding refresh result for a session that has ended")
        return NoRefreshToken(error_description="Session ended during refresh.")

    async def _refresh_once(self) -> AuthTokens:
        try:
            stored = self._storage.load_tokens()
            if stored is None or not stored.tokens.refresh_token:
                raise self._fail(NoRefreshToken())

            generation = self._generation
            try:
                new_tokens = await _guarded(
                    self._api.refresh(
                        stored.tokens.refresh_token,
                        self.config.client_id,
                        self.config.client_secret,
                    )
                )
            except CustosError as exc:
                if generation != self._generation:
                    raise self._superseded() from exc
                if isinstance(exc, AuthServerRejected):
                    raise self._fail(
                        TokenExchangeFailed(
                            error=exc.error, error_description=exc.error_description
                        )
                    ) from exc
                self._fail(exc)
                raise

            if generation != self._generation:
                # Logged out (or re-logged in) while the exchange was in flight.
                raise self._superseded()

            issued_at = self._clock()
            new_tokens = new_tokens.with_fallback_refresh_token(
                stored.tokens.refresh_token
            )
            self._storage.save_tokens(new_tokens, issued_at)
            self._generation += 1
            self._scheduler.arm(new_tokens, issued_at, renewal=True)
            self._state = SessionState.AUTHENTICATED
            self._log.info("Access token refreshed (expires in %ss)", new_tokens.expires_in)
            self._bus.emit(AuthEventType.TOKEN_REFRESH, new_tokens)
            return new_tokens
        finally:
            if self._refresh_task is asyncio.current_task():
                self._refresh_task = None

    def _end_generation(self) -> None:
        """Invalidate work started against the session being replaced or cleared."""
        self._generation += 1
        self._refresh_task = None

    async def _on_expiry_timer(self) -> None:
        generation = self._generation
        try:
            await self.refresh()
        except CustosError as exc:
            if generation != self._generation:
                # A newer session (or none) replaced the one this timer belonged to.
                return
            self._log.warning("Scheduled refresh failed; ending session")
            self._bus.emit(AuthEventType.TOKEN_EXPIRED, exc)
            await self.logout()

    async def logout(self) -> None:
        """Revoke (best effort) and clear all local session data."""
        stored = self._storage.load_tokens()
        revoke_error: CustosError | None = None
        if stored is not None and stored.tokens.access_token:
            try:
                await _guarded(self._api.revoke(stored.tokens.access_token))
            except CustosError as exc:
                revoke_error = exc

        self._scheduler.cancel()
        self._storage.clear()
        self._end_generation()
        self._state = SessionState.IDLE
        self._log.info("Session cleared")

        if revoke_error is not None:
            self._fail(revoke_error)
        self._bus.emit(AuthEventType.LOGOUT, None)

    async def restore(self) -> bool:
        """Resume a session persisted by an earlier run and re-arm renewal."""
        self._state = self._resting_state()
        stored = self._storage.load_tokens()
        if self._state is not SessionState.AUTHENTICATED or stored is None:
            return False
        return self._scheduler.arm(stored.tokens, stored.issued_at)

    async def validate_token(self) -> bool:
        """Ask the server whether the current access token is still active."""
        access_token = self.get_access_token()
        if not access_token:
            return False
        try:
            return await self._api.validate(access_token)
        except CustosError:
            return False

    # ------------------------------------------------------------------ #
    # Accessors                                                          #
    # ------------------------------------------------------------------ #
    def is_authenticated(self) -> bool:
        stored = self._storage.load_tokens()
        if stored is None:
            return False
        if stored.is_expired(self._clock(), margin=self.config.expiry_margin_seconds):
            return False
        return self._storage.load_user() is not None

    def get_user(self) -> User | None:
        return self._storage.load_user()

    def get_tokens(self) -> AuthTokens | None:
        stored = self._storage.load_tokens()
        return stored.tokens if stored else None

    def get_access_token(self) -> str | None:
        tokens = self.get_tokens()
        return tokens.access_token if tokens else None

    def get_refresh_token(self) -> str | None:
        tokens = self.get_tokens()
        return tokens.refresh_token if tokens else None

    def get_auth_state(self) -> AuthState:
        return AuthState(
            is_authenticated=self.is_authenticated(),
            user=self.get_user(),
            tokens=self.get_tokens(),
        )

    def pending_state(self) -> str | None:
        """Return the ``state`` of the in-flight flow, if any."""
        pending = self._storage.load_pending()
        return pending.state if pending else None

    @staticmethod
    def has_callback_params(url: str) -> bool:
        return urls.has_callback_params(url)

    # ------------------------------------------------------------------ #
    # Events & teardown                                                  #
    # ------------------------------------------------------------------ #
    def on(self, event_type: AuthEventType | str, handler: Handler) -> None:
        self._bus.on(event_type, handler)

    def off(self, event_type: AuthEventType | str, handler: Handler) -> None:
        self._bus.off(event_type, handler)

    def clear_storage(self) -> None:
        self._scheduler.cancel()
        self._storage.clear()
        self._end_generation()
        self._state = SessionState.IDLE

    def destroy(self) -> None:
        self._scheduler.cancel()
        self._bus.destroy()
