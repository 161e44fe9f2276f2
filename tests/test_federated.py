"""
tests/test_federated.py -- Login submission outcomes and the Google button binding.

The identity SDK is a small recording fake; the credential it delivers is
forwarded to the fake backend's /auth/google.
"""

from __future__ import annotations

from auth.errors import NETWORK_ERROR_MESSAGE, NoticeLevel
from auth.federated import BUTTON_OPTIONS, GoogleSignIn
from auth.login import sign_in, sign_in_with_google
from auth.session import SessionManager
from auth.store import CredentialStore

SEEKER_ACCOUNT = {"accountId": "2", "email": "seeker@jobhub.io", "roles": [{"roleName": "JOB_SEEKER"}]}


class FakeIdentity:
    def __init__(self) -> None:
        self.client_id = None
        self.callback = None
        self.rendered = []

    def initialize(self, client_id, callback) -> None:
        self.client_id = client_id
        self.callback = callback

    def render_button(self, container, options) -> None:
        self.rendered.append((container, options))


def _session(storage, backend) -> SessionManager:
    return SessionManager(CredentialStore(storage), backend).init()


class TestSignIn:
    async def test_success_redirects_by_role(self, storage, backend, fake_backend):
        fake_backend.login_ok()
        outcome = await sign_in(_session(storage, backend), "admin@jobhub.io", "Secret1!")
        assert outcome.ok
        assert outcome.redirect == "/admin/dashboard"
        assert outcome.notice.level is NoticeLevel.SUCCESS

    async def test_success_honors_next(self, storage, backend, fake_backend):
        fake_backend.login_ok()
        outcome = await sign_in(_session(storage, backend), "admin@jobhub.io", "Secret1!", "/admin/users")
        assert outcome.redirect == "/admin/users"

    async def test_bad_credentials_use_backend_message(self, storage, backend, fake_backend):
        fake_backend.fail("/auth/login", 401, "UNAUTHORIZED", "Invalid email or password")
        session = _session(storage, backend)
        outcome = await sign_in(session, "admin@jobhub.io", "wrong")
        assert not outcome.ok
        assert outcome.notice.title == "Login failed"
        assert outcome.notice.message == "Invalid email or password"
        assert not session.is_authenticated

    async def test_network_failure_is_generic(self, storage, backend, fake_backend):
        fake_backend.fail("/auth/login", 500, "CLIENT_ERROR", "connect timeout")
        outcome = await sign_in(_session(storage, backend), "admin@jobhub.io", "Secret1!")
        assert outcome.notice.message == NETWORK_ERROR_MESSAGE

    async def test_missing_google_credential(self, storage, backend, fake_backend):
        outcome = await sign_in_with_google(_session(storage, backend), None)
        assert not outcome.ok
        assert outcome.notice.message == "No token was received from Google."
        assert fake_backend.requests == []


class TestGoogleSignIn:
    def test_mount_renders_button(self, storage, backend):
        identity = FakeIdentity()
        button = GoogleSignIn(identity, _session(storage, backend), "client-123")
        assert button.mount("container")
        assert identity.client_id == "client-123"
        assert identity.rendered == [("container", BUTTON_OPTIONS)]

    def test_mount_without_sdk_or_client_id(self, storage, backend):
        session = _session(storage, backend)
        assert not GoogleSignIn(None, session, "client-123").mount("container")
        identity = FakeIdentity()
        assert not GoogleSignIn(identity, session, "").mount("container")
        assert identity.rendered == []

    async def test_credential_completes_login(self, storage, backend, fake_backend):
        fake_backend.login_ok("/auth/google", account=SEEKER_ACCOUNT, token="at-g")
        session = _session(storage, backend)
        results = []
        button = GoogleSignIn(FakeIdentity(), session, "client-123", on_result=results.append, next_path="/jobs/7")
        button.mount("container")

        outcome = await button.handle_credential({"credential": "google-jwt"})

        assert outcome.ok
        assert outcome.redirect == "/jobs/7"
        assert results == [outcome]
        assert session.access_token == "at-g"
        assert fake_backend.body("/auth/google") == {"idToken": "google-jwt"}

    async def test_unmounted_button_drops_result(self, storage, backend, fake_backend):
        fake_backend.login_ok("/auth/google", account=SEEKER_ACCOUNT)
        gate = fake_backend.hold("/auth/google")
        results = []
        identity = FakeIdentity()
        button = GoogleSignIn(identity, _session(storage, backend), "client-123", on_result=results.append)
        button.mount("container")

        handle = identity.callback({"credential": "google-jwt"})
        button.unmount()
        gate.set()
        await handle.task

        assert not handle.valid
        assert results == []
