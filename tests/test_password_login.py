"""
tests/test_password_login.py -- Email/password form submission on the edge app.

The login page's form posts to /login; the backend is FakeBackend.
Covers:
  - the posted email is normalized before it reaches POST /auth/login
  - success returns the handoff body and relays the refresh cookie
  - a safe ?next= on the form action is honored, an unsafe one is dropped
  - rejected credentials and transport failures land on /login?error=...
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

SEEKER_ACCOUNT = {"accountId": "2", "email": "seeker@jobhub.io", "roles": [{"roleName": "JOB_SEEKER"}]}


def _query(location: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(location).query)


def test_login_page_form_posts_to_login(edge_client):
    client, _, _ = edge_client
    resp = client.get("/login", params={"next": "/admin/users"})
    assert 'action="/login?next=/admin/users"' in resp.text


def test_login_relays_session_and_cookie(edge_client):
    client, fake, _ = edge_client
    fake.login_ok(account=SEEKER_ACCOUNT, token="at-p")

    resp = client.post("/login", data={"email": "  Seeker@JobHub.io ", "password": "Secret1!"})

    assert resp.status_code == 200
    assert fake.body("/auth/login") == {"email": "seeker@jobhub.io", "password": "Secret1!"}
    body = resp.json()
    assert body["accessToken"] == "at-p"
    assert body["account"]["roles"] == ["JOB_SEEKER"]
    assert body["redirect"] == "/job-seeker/dashboard"
    assert "jobhub_refresh_token=rt-1" in resp.headers["set-cookie"]
    assert resp.headers["cache-control"] == "no-store"


def test_login_honors_next(edge_client):
    client, fake, _ = edge_client
    fake.login_ok()

    resp = client.post("/login?next=/admin/users", data={"email": "admin@jobhub.io", "password": "Secret1!"})

    assert resp.json()["redirect"] == "/admin/users"


def test_login_drops_offsite_next(edge_client):
    client, fake, _ = edge_client
    fake.login_ok()

    resp = client.post("/login?next=//evil.com", data={"email": "admin@jobhub.io", "password": "Secret1!"})

    assert resp.json()["redirect"] == "/admin/dashboard"


def test_bad_credentials_redirect_to_login(edge_client):
    client, fake, _ = edge_client
    fake.fail("/auth/login", 401, "UNAUTHORIZED", "Invalid email or password")

    resp = client.post("/login?next=/admin/users", data={"email": "a@b.io", "password": "nope"})

    assert resp.status_code == 302
    query = _query(resp.headers["location"])
    assert query["error"] == ["bad_credentials"]
    assert query["next"] == ["/admin/users"]
    assert "set-cookie" not in resp.headers


def test_error_message_is_rendered(edge_client):
    client, _, _ = edge_client
    resp = client.get("/login", params={"error": "bad_credentials"})
    assert "Invalid email or password." in resp.text


def test_other_backend_failure_is_generic(edge_client):
    client, fake, _ = edge_client
    fake.fail("/auth/login", 500, "INTERNAL_SERVER_ERROR")

    resp = client.post("/login", data={"email": "a@b.io", "password": "pw"})

    assert resp.status_code == 302
    assert resp.headers["location"] == "/login?error=login_failed"


def test_missing_field_is_rejected(edge_client):
    client, fake, _ = edge_client
    resp = client.post("/login", data={"email": "a@b.io"})
    assert resp.status_code == 422
    assert fake.calls("/auth/login") == []
