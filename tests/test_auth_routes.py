"""Integration tests for api/routes/v1/auth.py and the error envelope.

Every test goes through the real app (routes, dependencies, exception
handlers) against an isolated shared-memory database. The client is
module-scoped, so each test registers its own uniquely named users.
"""

import uuid

import pytest
from sqlalchemy.exc import OperationalError

# Seeded by the `api` fixture in conftest.py.
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@x.com"


def _register(client, email: str, password: str = "secret1", name: str = "Test User"):
    return client.post("/api/auth/register", json={"email": email, "password": password, "name": name})


def _error_code(resp) -> str:
    body = resp.json()
    assert body["success"] is False
    return body["error"]["code"]


# ---------------------------------------------------------------------------
# Register / profile / logout
# ---------------------------------------------------------------------------


def test_register_then_profile(api):
    resp = _register(api.client, "alice@x.com", "secret1", "Alice A")
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["token_type"] == "bearer"
    assert resp.headers["Cache-Control"] == "no-store"
    t1 = body["data"]["token"]

    profile = api.client.get("/api/auth/profile", headers=bearer(t1))
    assert profile.status_code == 200
    assert profile.json()["data"]["user"]["email"] == "alice@x.com"


def test_register_response_never_contains_password_hash(api):
    resp = _register(api.client, _email())
    assert "hashed_password" not in resp.json()["data"]["user"]
    assert "secret1" not in resp.text


def test_logout_revokes_token(api):
    token = _register(api.client, _email()).json()["data"]["token"]

    resp = api.client.post("/api/auth/logout", headers=bearer(token))
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    after = api.client.get("/api/auth/profile", headers=bearer(token))
    assert after.status_code == 401
    assert _error_code(after) == "session_expired_or_revoked"


def test_duplicate_email_returns_400(api):
    email = _email("dup")
    assert _register(api.client, email).status_code == 201
    resp = _register(api.client, email)
    assert resp.status_code == 400
    assert _error_code(resp) == "duplicate_email"


@pytest.mark.parametrize(
    "payload",
    [
        {"email": "not-an-email", "password": "secret1", "name": "X"},
        {"email": "short@x.com", "password": "abc", "name": "X"},
        {"email": "noname@x.com", "password": "secret1", "name": ""},
        {"email": "missing@x.com"},
    ],
)
def test_register_validation_errors_are_400(api, payload):
    resp = api.client.post("/api/auth/register", json=payload)
    assert resp.status_code == 400
    assert _error_code(resp) == "validation_error"


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def test_login_success(api):
    email = _email()
    user_id = _register(api.client, email).json()["data"]["user"]["id"]
    resp = api.client.post("/api/auth/login", json={"email": email, "password": "secret1"})
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["id"] == user_id
    assert resp.headers["Cache-Control"] == "no-store"


def test_wrong_password_matches_unknown_email(api):
    email = _email()
    _register(api.client, email)

    wrong = api.client.post("/api/auth/login", json={"email": email, "password": "wrongpassword"})
    unknown = api.client.post("/api/auth/login", json={"email": "nonexistent@x.com", "password": "anything"})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()
    assert _error_code(wrong) == "invalid_credentials"


def test_deactivated_user_login_returns_401(api):
    email = _email()
    user_id = _register(api.client, email).json()["data"]["user"]["id"]
    api.service.users.update_user(user_id, is_active=False)

    resp = api.client.post("/api/auth/login", json={"email": email, "password": "secret1"})
    assert resp.status_code == 401
    assert _error_code(resp) == "account_deactivated"


# ---------------------------------------------------------------------------
# Verification failures over HTTP
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer "}])
def test_missing_token(api, headers):
    resp = api.client.get("/api/auth/profile", headers=headers)
    assert resp.status_code == 401
    assert _error_code(resp) == "missing_token"


def test_invalid_token(api):
    resp = api.client.get("/api/auth/profile", headers=bearer("garbage.token.value"))
    assert resp.status_code == 401
    assert _error_code(resp) == "invalid_token"


def test_deactivated_user_with_live_session_is_rejected(api):
    body = _register(api.client, _email()).json()["data"]
    api.service.users.update_user(body["user"]["id"], is_active=False)

    resp = api.client.get("/api/auth/profile", headers=bearer(body["token"]))
    assert resp.status_code == 401
    assert _error_code(resp) == "account_deactivated"


# ---------------------------------------------------------------------------
# Password management
# ---------------------------------------------------------------------------


def test_change_password_flow(api):
    email = _email()
    current = _register(api.client, email).json()["data"]["token"]
    other = api.client.post("/api/auth/login", json={"email": email, "password": "secret1"}).json()["data"]["token"]

    resp = api.client.post(
        "/api/auth/change-password",
        json={"current_password": "secret1", "new_password": "newsecret1"},
        headers=bearer(current),
    )
    assert resp.status_code == 200

    assert api.client.get("/api/auth/profile", headers=bearer(current)).status_code == 200
    assert api.client.get("/api/auth/profile", headers=bearer(other)).status_code == 401
    ok = api.client.post("/api/auth/login", json={"email": email, "password": "newsecret1"})
    assert ok.status_code == 200


def test_change_password_wrong_current(api):
    token = _register(api.client, _email()).json()["data"]["token"]
    resp = api.client.post(
        "/api/auth/change-password",
        json={"current_password": "nope", "new_password": "newsecret1"},
        headers=bearer(token),
    )
    assert resp.status_code == 401
    assert _error_code(resp) == "invalid_credentials"


def test_reset_password_flow(api):
    email = _email()
    old_token = _register(api.client, email).json()["data"]["token"]

    unknown = api.client.post("/api/auth/reset-password", json={"email": "ghost@x.com"})
    known = api.client.post("/api/auth/reset-password", json={"email": email})
    assert unknown.status_code == known.status_code == 200
    assert unknown.json()["message"] == known.json()["message"]

    reset_token = api.mailer.last_token_for(email)
    confirm = api.client.post(
        "/api/auth/reset-password/confirm",
        json={"token": reset_token, "new_password": "resetpass1"},
    )
    assert confirm.status_code == 200

    assert api.client.get("/api/auth/profile", headers=bearer(old_token)).status_code == 401
    assert api.client.post("/api/auth/login", json={"email": email, "password": "resetpass1"}).status_code == 200

    reused = api.client.post(
        "/api/auth/reset-password/confirm",
        json={"token": reset_token, "new_password": "again12345"},
    )
    assert reused.status_code == 400
    assert _error_code(reused) == "invalid_reset_token"


# ---------------------------------------------------------------------------
# Admin user management
# ---------------------------------------------------------------------------


def test_list_users_requires_admin(api):
    token = _register(api.client, _email()).json()["data"]["token"]
    resp = api.client.get("/api/auth/admin/users", headers=bearer(token))
    assert resp.status_code == 403
    assert _error_code(resp) == "forbidden"


def test_admin_lists_users(api):
    resp = api.client.get("/api/auth/admin/users", headers=bearer(api.admin_token))
    assert resp.status_code == 200
    emails = [u["email"] for u in resp.json()["data"]["users"]]
    assert ADMIN_EMAIL in emails


def test_admin_deactivates_user(api):
    body = _register(api.client, _email()).json()["data"]
    resp = api.client.patch(
        f"/api/auth/admin/users/{body['user']['id']}",
        json={"is_active": False},
        headers=bearer(api.admin_token),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["is_active"] is False
    assert api.client.get("/api/auth/profile", headers=bearer(body["token"])).status_code == 401


def test_admin_cannot_deactivate_self(api):
    resp = api.client.patch(
        f"/api/auth/admin/users/{api.admin_id}",
        json={"is_active": False},
        headers=bearer(api.admin_token),
    )
    assert resp.status_code == 400
    assert _error_code(resp) == "self_deactivation"


def test_last_admin_cannot_be_demoted(api):
    assert api.service.users.count_active_admins() == 1
    resp = api.client.patch(
        f"/api/auth/admin/users/{api.admin_id}",
        json={"role": "user"},
        headers=bearer(api.admin_token),
    )
    assert resp.status_code == 400
    assert _error_code(resp) == "last_admin"


def test_second_admin_can_be_promoted_and_demoted(api):
    user_id = _register(api.client, _email("deputy")).json()["data"]["user"]["id"]
    url = f"/api/auth/admin/users/{user_id}"

    promoted = api.client.patch(url, json={"role": "admin"}, headers=bearer(api.admin_token))
    assert promoted.status_code == 200
    assert promoted.json()["data"]["user"]["role"] == "admin"

    demoted = api.client.patch(url, json={"role": "user"}, headers=bearer(api.admin_token))
    assert demoted.status_code == 200
    assert demoted.json()["data"]["user"]["role"] == "user"


def test_patch_without_changes(api):
    resp = api.client.patch(
        f"/api/auth/admin/users/{api.admin_id}",
        json={"role": "admin"},
        headers=bearer(api.admin_token),
    )
    assert resp.status_code == 400
    assert _error_code(resp) == "no_changes"


def test_patch_unknown_user(api):
    resp = api.client.patch(
        "/api/auth/admin/users/does-not-exist",
        json={"is_active": False},
        headers=bearer(api.admin_token),
    )
    assert resp.status_code == 404
    assert _error_code(resp) == "not_found"


def test_patch_rejects_unknown_role(api):
    resp = api.client.patch(
        f"/api/auth/admin/users/{api.admin_id}",
        json={"role": "superuser"},
        headers=bearer(api.admin_token),
    )
    assert resp.status_code == 400
    assert _error_code(resp) == "validation_error"


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


def test_store_failure_maps_to_503(api, monkeypatch):
    def locked(user_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(api.service.users, "get_by_id", locked)
    resp = api.client.get("/api/auth/profile", headers=bearer(api.admin_token))
    assert resp.status_code == 503
    assert _error_code(resp) == "service_unavailable"


def test_unknown_route_uses_error_envelope(api):
    resp = api.client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert _error_code(resp) == "http_404"


def test_health(api):
    resp = api.client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["components"]["database"] == "ok"


def test_admin_login_still_works(api):
    resp = api.client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["role"] == "admin"
