"""
auth/federated.py -- Binding for an injected Google Identity capability.

The identity SDK is an external object exposing initialize(client_id, callback)
and render_button(container, options). Its callback delivers a response dict
whose "credential" string is forwarded verbatim to POST /auth/google through
SessionManager.google_login(). The SDK's callback is synchronous, so the login
runs as a task in the session's task scope.

Nothing here validates the credential; the backend owns that.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Optional, Protocol

from auth.login import LoginOutcome, sign_in_with_google
from auth.session import SessionManager
from auth.tasks import TaskHandle, TaskScope

logger = logging.getLogger("jobhub.auth.federated")

BUTTON_OPTIONS: dict[str, str] = {
    "theme": "outline",
    "size": "large",
    "width": "100%",
    "text": "continue_with",
}


class IdentityCapability(Protocol):
    def initialize(self, client_id: str, callback: Callable[[dict], Any]) -> None: ...

    def render_button(self, container: Any, options: dict) -> None: ...


class GoogleSignIn:
    """Mounts the Google button and completes sign-in with its credential.

    Usage:
        button = GoogleSignIn(identity, session, client_id, on_result=show, next_path="/jobs")
        button.mount(container)
    """

    def __init__(
        self,
        identity: Optional[IdentityCapability],
        session: SessionManager,
        client_id: str,
        *,
        on_result: Optional[Callable[[LoginOutcome], None]] = None,
        next_path: Optional[str] = None,
    ) -> None:
        self.identity = identity
        self.session = session
        self.client_id = client_id
        self.on_result = on_result
        self.next_path = next_path
        self.is_submitting = False
        self._scope = TaskScope()

    def mount(self, container: Any) -> bool:
        """Initialize the SDK and render the button. False when Google is unavailable."""
        if self.identity is None or not self.client_id:
            logger.debug("Google sign-in not mounted (sdk=%s, client_id set=%s)", self.identity is not None, bool(self.client_id))
            return False
        self.identity.initialize(self.client_id, self._on_credential)
        self.identity.render_button(container, dict(BUTTON_OPTIONS))
        return True

    def _on_credential(self, response: dict) -> TaskHandle:
        credential = response.get("credential") if isinstance(response, dict) else None
        return self._scope.spawn(lambda handle: self._complete(handle, credential))

    async def _complete(self, handle: TaskHandle, credential: Optional[str]) -> LoginOutcome:
        self.is_submitting = True
        try:
            outcome = await sign_in_with_google(self.session, credential, self.next_path)
        finally:
            self.is_submitting = False
        if handle.valid and self.on_result is not None:
            self.on_result(outcome)
        return outcome

    async def handle_credential(self, response: dict) -> LoginOutcome:
        """Run the SDK callback path to completion (used by non-browser hosts)."""
        handle = self._on_credential(response)
        return await handle.task

    def unmount(self) -> None:
        self._scope.close()
