"""
tests/test_api_routes.py -- Integration tests for the users API and the bearer guard.

These tests exercise the full stack: FastAPI routing -> require_identity
dependency -> Auth -> UserStore -> AuthError handler -> response envelope.
They mirror the login flow an embedding application's clients go through:
register, log in, call a guarded route with the returned bearer token.

Coverage:
  - register: 200 with user_id, 409 on duplicate name, 422 on bad body
  - login: 200 with bearer token, 403 bad_credentials (same body for unknown user)
  - guarded route: 200 with valid token, 403 token_invalid / token_expired
  - rate limit on login: 429 once LOGIN_RATE_LIMIT is exceeded
  - framework 404/405 responses use the same error envelope
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from core.config import get_settings

REGISTER = "/api/v1/users/register"
LOGIN = "/api/v1/users/login"
ME = "/api/v1/users/me"


def _register_and_login(client: TestClient, username: str = "Sam I Am", password: str = "foobar") -> tuple[str, str]:
    user_id = client.post(REGISTER, json={"username": username, "password": password}).json()["user_id"]
    token = client.post(LOGIN, json={"username": username, "password": password}).json()["access_token"]
    return user_id, token


class TestRegister:
    def test_register(self, api_client: TestClient) -> None:
        resp = api_client.post(REGISTER, json={"username": "Sam I Am", "password": "foobar"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["user_id"]
        assert "password" not in resp.text

    def test_duplicate_register_conflicts(self, api_client: TestClient) -> None:
        api_client.post(REGISTER, json={"username": "Sam I Am", "password": "foobar"})
        resp = api_client.post(REGISTER, json={"username": "Sam I Am", "password": "fizzbuzz"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "username_taken"

    @pytest.mark.parametrize(
        "body",
        [
            {"username": "sam"},
            {"username": "", "password": "foobar"},
            {"username": "sam", "password": "x" * 73},
            {"username": "sam", "password": "é" * 72},
        ],
    )
    def test_invalid_body(self, api_client: TestClient, body: dict) -> None:
        resp = api_client.post(REGISTER, json=body)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_multibyte_password_at_byte_limit(self, api_client: TestClient) -> None:
        password = "é" * 36
        assert api_client.post(REGISTER, json={"username": "sam", "password": password}).status_code == 200
        resp = api_client.post(LOGIN, json={"username": "sam", "password": password})
        assert resp.status_code == 200, resp.text

    def test_overlong_login_password_is_rejected_before_bcrypt(self, api_client: TestClient) -> None:
        resp = api_client.post(LOGIN, json={"username": "sam", "password": "é" * 72})
        assert resp.status_code == 422


class TestLogin:
    def test_login_returns_bearer_token(self, api_client: TestClient) -> None:
        api_client.post(REGISTER, json={"username": "Sam I Am", "password": "foobar"})
        resp = api_client.post(LOGIN, json={"username": "Sam I Am", "password": "foobar"})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 3600
        assert data["access_token"].count(".") == 2
        assert resp.headers["Cache-Control"] == "no-store"

    def test_wrong_password_denied(self, api_client: TestClient) -> None:
        api_client.post(REGISTER, json={"username": "Sam I Am", "password": "foobar"})
        resp = api_client.post(LOGIN, json={"username": "Sam I Am", "password": "hunter1"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "bad_credentials"
        assert resp.headers["Cache-Control"] == "no-store"

    def test_unknown_user_indistinguishable(self, api_client: TestClient) -> None:
        api_client.post(REGISTER, json={"username": "Sam I Am", "password": "foobar"})
        wrong = api_client.post(LOGIN, json={"username": "Sam I Am", "password": "hunter1"})
        unknown = api_client.post(LOGIN, json={"username": "Nobody", "password": "hunter1"})
        assert unknown.status_code == wrong.status_code == 403
        assert unknown.json() == wrong.json()


class TestGuardedRoute:
    def test_valid_token(self, api_client: TestClient) -> None:
        user_id, token = _register_and_login(api_client)
        resp = api_client.get(ME, headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["user_id"] == user_id

    def test_scheme_is_case_insensitive(self, api_client: TestClient) -> None:
        user_id, token = _register_and_login(api_client)
        resp = api_client.get(ME, headers={"Authorization": f"bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["user_id"] == user_id

    def test_missing_header(self, api_client: TestClient) -> None:
        resp = api_client.get(ME)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "token_invalid"
        assert resp.headers["WWW-Authenticate"].startswith("Bearer")

    def test_fake_token(self, api_client: TestClient) -> None:
        resp = api_client.get(ME, headers={"Authorization": "Bearer fake token"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "token_invalid"

    def test_tampered_token(self, api_client: TestClient) -> None:
        _user_id, token = _register_and_login(api_client)
        header, payload, signature = token.split(".")
        tampered = f"{header}.{payload}.{'A' if signature[0] != 'A' else 'B'}{signature[1:]}"
        resp = api_client.get(ME, headers={"Authorization": f"Bearer {tampered}"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "token_invalid"

    def test_expired_token(self, api_client: TestClient, clock) -> None:
        _user_id, token = _register_and_login(api_client)
        clock.advance(1800)
        assert api_client.get(ME, headers={"Authorization": f"Bearer {token}"}).status_code == 200

        clock.advance(1801)
        resp = api_client.get(ME, headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "token_expired"

    def test_relogin_after_expiry(self, api_client: TestClient, clock) -> None:
        user_id, token = _register_and_login(api_client)
        clock.advance(7200)
        assert api_client.get(ME, headers={"Authorization": f"Bearer {token}"}).status_code == 403

        fresh = api_client.post(LOGIN, json={"username": "Sam I Am", "password": "foobar"}).json()["access_token"]
        resp = api_client.get(ME, headers={"Authorization": f"Bearer {fresh}"})
        assert resp.status_code == 200
        assert resp.json()["user_id"] == user_id


class TestRateLimit:
    @pytest.fixture
    def tight_limit(self, monkeypatch):
        monkeypatch.setenv("LOGIN_RATE_LIMIT", "2/minute")
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_login_is_rate_limited(self, api_client: TestClient, tight_limit) -> None:
        body = {"username": "nobody", "password": "hunter1"}
        assert api_client.post(LOGIN, json=body).status_code == 403
        assert api_client.post(LOGIN, json=body).status_code == 403
        resp = api_client.post(LOGIN, json=body)
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "rate_limited"
        assert "Retry-After" in resp.headers

    def test_register_is_not_rate_limited(self, api_client: TestClient, tight_limit) -> None:
        for i in range(3):
            resp = api_client.post(REGISTER, json={"username": f"user{i}", "password": "foobar"})
            assert resp.status_code == 200


class TestFrameworkErrors:
    def test_unknown_path_uses_error_envelope(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/nope")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "http_404"

    def test_wrong_method_uses_error_envelope(self, api_client: TestClient) -> None:
        resp = api_client.get(LOGIN)
        assert resp.status_code == 405
        assert resp.json()["error"]["code"] == "http_405"
