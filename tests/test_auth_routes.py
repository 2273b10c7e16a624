"""
tests/test_auth_routes.py -- Integration tests for /signup, /login, /logout.

These tests exercise the full stack: FastAPI routing -> telemetry dependency
-> AuthService -> CredentialStore/SessionStore -> error handler envelope.

Coverage:
  - Signup validation: short username / short password -> 400 with exact messages
  - Signup conflict: same name twice -> 201 then 409
  - Login: success sets an httpOnly cookie; unknown user and wrong password
    return byte-identical 401 bodies
  - Logout: with and without a session; destroy failure -> 500
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from auth.sessions import TerminateResult


def _signup(client: TestClient, username: str, password: str):
    return client.post("/signup", json={"username": username, "password": password})


def _login(client: TestClient, username: str, password: str):
    return client.post("/login", json={"username": username, "password": password})


class TestSignup:
    def test_short_username_rejected(self, gateway) -> None:
        client, _ = gateway
        resp = _signup(client, "ab", "longenoughpw")
        assert resp.status_code == 400
        assert resp.json() == {"ok": False, "error": "username must be at least 3 characters"}

    @pytest.mark.parametrize("username", ["", "a", "ab", "   ab   ", "  "])
    def test_usernames_under_three_chars_after_trim(self, gateway, username: str) -> None:
        client, events = gateway
        resp = _signup(client, username, "longenoughpw")
        assert resp.status_code == 400
        assert events[-1].reason == "username_too_short"

    @pytest.mark.parametrize("password", ["", "a", "12345"])
    def test_passwords_under_six_chars(self, gateway, password: str) -> None:
        client, events = gateway
        resp = _signup(client, "charlie", password)
        assert resp.status_code == 400
        assert resp.json() == {"ok": False, "error": "password must be at least 6 characters"}
        assert events[-1].reason == "password_too_short"

    def test_username_checked_before_password(self, gateway) -> None:
        client, events = gateway
        resp = _signup(client, "ab", "123")
        assert resp.status_code == 400
        assert events[-1].reason == "username_too_short"

    def test_non_string_fields_treated_as_empty(self, gateway) -> None:
        client, _ = gateway
        resp = client.post("/signup", json={"username": 12345, "password": "longenoughpw"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "username must be at least 3 characters"

    def test_missing_body_is_validation_failure(self, gateway) -> None:
        client, _ = gateway
        resp = client.post("/signup")
        assert resp.status_code == 400

    def test_malformed_json_is_400(self, gateway) -> None:
        client, _ = gateway
        resp = client.post("/signup", content=b"{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["ok"] is False

    def test_signup_then_duplicate(self, gateway) -> None:
        client, events = gateway
        first = _signup(client, "alice", "secret1")
        assert first.status_code == 201
        body = first.json()
        assert body["ok"] is True
        assert body["username"] == "alice"
        assert body["user_id"] == "1"

        second = _signup(client, "alice", "secret1")
        assert second.status_code == 409
        assert second.json() == {"ok": False, "error": "username already exists"}
        assert events[-1].reason == "username_taken"

    def test_username_is_trimmed(self, gateway) -> None:
        client, _ = gateway
        assert _signup(client, "  bob  ", "secret1").json()["username"] == "bob"
        assert _signup(client, "bob", "secret1").status_code == 409

    def test_user_ids_are_sequential(self, gateway) -> None:
        client, _ = gateway
        ids = [_signup(client, f"user{i}", "secret1").json()["user_id"] for i in range(3)]
        assert ids == ["1", "2", "3"]


class TestLogin:
    def test_login_success_sets_http_only_cookie(self, gateway) -> None:
        client, _ = gateway
        _signup(client, "alice", "secret1")
        resp = _login(client, "alice", "secret1")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "user_id": "1", "username": "alice"}
        set_cookie = resp.headers["set-cookie"]
        assert set_cookie.startswith("sid=")
        assert "httponly" in set_cookie.lower()
        assert resp.headers["cache-control"] == "no-store"

    def test_unknown_user_and_wrong_password_are_indistinguishable(self, gateway) -> None:
        client, _ = gateway
        _signup(client, "alice", "secret1")
        unknown = _login(client, "never_registered", "secret1")
        wrong = _login(client, "alice", "not-the-password")
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.content == wrong.content
        assert unknown.json() == {"ok": False, "error": "invalid credentials"}
        assert "set-cookie" not in unknown.headers
        assert "set-cookie" not in wrong.headers

    def test_telemetry_separates_failure_causes(self, gateway) -> None:
        """Operators can tell the cases apart; the wire cannot."""
        client, events = gateway
        _signup(client, "alice", "secret1")
        _login(client, "ghost", "secret1")
        _login(client, "alice", "wrongpass")
        assert [e.reason for e in events[-2:]] == ["unknown_user", "bad_password"]
        assert all(e.event_type == "login_attempt" and e.result == "failure" for e in events[-2:])

    def test_login_trims_username(self, gateway) -> None:
        client, _ = gateway
        _signup(client, "alice", "secret1")
        assert _login(client, "  alice ", "secret1").status_code == 200


class TestLogout:
    def test_logout_without_session_is_noop_success(self, gateway) -> None:
        client, events = gateway
        resp = client.post("/logout")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        assert events[-1].event_type == "logout"
        assert events[-1].reason == "no_session"

    def test_logout_destroys_session(self, gateway) -> None:
        client, events = gateway
        _signup(client, "alice", "secret1")
        _login(client, "alice", "secret1")
        resp = client.post("/logout")
        assert resp.status_code == 200
        assert events[-1].reason == "destroyed"
        assert events[-1].user_id is None
        assert len(client.app.state.sessions) == 0

    def test_destroy_failure_returns_500(self, gateway, monkeypatch) -> None:
        client, events = gateway
        _signup(client, "alice", "secret1")
        _login(client, "alice", "secret1")
        monkeypatch.setattr(
            client.app.state.sessions,
            "terminate",
            lambda session: TerminateResult(ok=False, reason="destroy_failed"),
        )
        resp = client.post("/logout")
        assert resp.status_code == 500
        assert resp.json() == {"ok": False, "error": "logout failed"}
        assert events[-1].reason == "destroy_failed"
        assert events[-1].status == 500
