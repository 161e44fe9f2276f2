"""
auth/session.py -- Token/session manager: the auth facade the rest of JobHub calls.

Lifecycle (explicit, no module-level singleton):
  init()      subscribe to the session channel and hydrate from the store
  hydrate()   rebuild in-memory state from the CredentialStore (also: reload())
  mutations   login(), google_login(), logout(), refresh()
  teardown()  unsubscribe and invalidate outstanding async work

State is one frozen SessionState snapshot replaced in a single assignment, so
consumers never observe an account without its token or the reverse.

Cross-tab sync: this manager's own storage writes are published on the
channel by LocalStorage. Writes from any other tab that touch a session key
trigger hydrate(). There is no polling.

Stale results: every async operation takes a TaskHandle before awaiting. After
teardown() the handle is invalid and the result is not applied to in-memory
state (storage writes from a completed login still happen, as the backend has
already issued the session).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, Optional

from auth.channel import SessionChannel, StorageEvent
from auth.errors import SessionExpired
from auth.store import CredentialStore
from auth.tasks import TaskScope
from core.backend import ApiError, BackendClient
from core.models import Account, LoginResult, normalize_email

logger = logging.getLogger("jobhub.auth.session")


@dataclass(frozen=True)
class SessionState:
    account: Optional[Account] = None
    access_token: Optional[str] = None
    is_loading: bool = True

    @property
    def is_authenticated(self) -> bool:
        return self.account is not None and bool(self.access_token)

    @property
    def roles(self) -> list[str]:
        return list(self.account.roles) if self.account is not None else []


_LOGGED_OUT = SessionState(account=None, access_token=None, is_loading=False)

StateListener = Callable[[SessionState], None]


def _is_unauthenticated(error: ApiError) -> bool:
    return (
        error.status_code == 401
        or "unauth" in error.code.lower()
        or "unauthenticated" in error.message.lower()
    )


class SessionManager:
    """Current session for one tab.

    Usage:
        manager = SessionManager(CredentialStore(storage), backend)
        manager.init()
        account = await manager.login("a@b.com", "Secret1!")
        manager.teardown()

    Consumers must not branch on is_authenticated while is_loading is True.
    """

    def __init__(
        self,
        store: CredentialStore,
        backend: BackendClient,
        channel: Optional[SessionChannel] = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.channel = channel or store.storage.channel
        self._state = SessionState()
        self._listeners: list[StateListener] = []
        self._tasks = TaskScope()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._refresh_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def account(self) -> Optional[Account]:
        return self._state.account

    @property
    def access_token(self) -> Optional[str]:
        return self._state.access_token

    @property
    def roles(self) -> list[str]:
        return self._state.roles

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    def on_change(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with every new state. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> "SessionManager":
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self._on_storage_event)
        self.hydrate()
        return self

    def hydrate(self) -> SessionState:
        """Rebuild state from the store. Never leaves the manager half-initialized."""
        self._set_state(replace(self._state, is_loading=True))
        try:
            stored = self.store.load()
        except Exception:
            logger.exception("Failed to hydrate session from storage; clearing it")
            self.store.clear()
            stored = None
        if stored is None:
            self._set_state(_LOGGED_OUT)
        else:
            self._set_state(SessionState(stored.account, stored.access_token, is_loading=False))
        return self._state

    reload = hydrate

    def teardown(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._tasks.close()
        self._listeners.clear()

    def __enter__(self) -> "SessionManager":
        return self.init()

    def __exit__(self, *exc_info) -> None:
        self.teardown()

    def _on_storage_event(self, event: StorageEvent) -> None:
        if event.source == self.store.storage.tab_id:
            return
        if event.key in self.store.session_keys:
            logger.debug("Session key %s changed in another tab; re-hydrating", event.key)
            self.hydrate()

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> Account:
        """Password login. Raises ApiError on rejection; nothing is stored then."""
        return await self._establish(self.backend.login(normalize_email(email), password))

    async def google_login(self, id_token: str) -> Account:
        """Forward a Google credential verbatim to the backend."""
        return await self._establish(self.backend.google_login(id_token))

    async def _establish(self, call) -> Account:
        handle = self._tasks.handle()
        try:
            result: LoginResult = await call
            self.store.save(result.account, result.access_token)
            if handle.valid:
                self._set_state(SessionState(result.account, result.access_token, is_loading=False))
            logger.info("Session established for account %s", result.account.account_id)
            return result.account
        finally:
            handle.release()

    async def logout(self) -> None:
        """Invalidate the refresh cookie, then always clear the local session."""
        handle = self._tasks.handle()
        try:
            await self.backend.logout(self._state.access_token)
        except ApiError as e:
            logger.warning("Backend logout failed, clearing local session anyway: %s", e)
        finally:
            self.store.clear()
            if handle.valid:
                self._set_state(_LOGGED_OUT)
            handle.release()

    async def refresh(self) -> str:
        """Get a new access token. Concurrent callers share one backend call.

        Raises SessionExpired (after clearing the session) when the backend
        refuses the refresh cookie.
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_once())
        return await self._refresh_task

    async def _refresh_once(self) -> str:
        handle = self._tasks.handle()
        try:
            try:
                token = await self.backend.refresh_token()
            except ApiError as e:
                logger.warning("Token refresh failed; ending session: %s", e)
                self._end_session(handle.valid)
                raise SessionExpired("Session expired. Please log in again.") from e
            self.store.save_token(token)
            if handle.valid:
                self._set_state(replace(self._state, access_token=token))
            return token
        finally:
            handle.release()

    def _end_session(self, apply_state: bool = True) -> None:
        self.store.clear()
        if apply_state:
            self._set_state(_LOGGED_OUT)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Authenticated backend call with one refresh-and-retry on 401."""
        try:
            data, _ = await self.backend.send(
                method, path, json=json, params=params, access_token=self._state.access_token
            )
            return data
        except ApiError as e:
            if not _is_unauthenticated(e):
                raise
        token = await self.refresh()
        try:
            data, _ = await self.backend.send(method, path, json=json, params=params, access_token=token)
        except ApiError as e:
            if _is_unauthenticated(e):
                self._end_session()
                raise SessionExpired("Session expired. Please log in again.") from e
            raise
        return data
