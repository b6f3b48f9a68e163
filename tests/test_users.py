"""
User account tests: signup, email verification, login, logout, session cookie.

All flows go through the HTTP layer (TestClient) with the mailer faked, then
inspect the users / tokens tables directly.
"""

from datetime import datetime, timedelta, timezone

import jwt

from conftest import all_rows, count_rows, google_login


CREDENTIALS = {
    "type": "credentials",
    "user": {"email": "Ann@Example.com", "name": "Ann", "password": "s3cret-pass"},
}


def _signup(client):
    resp = client.post("/user/create", json=CREDENTIALS)
    assert resp.status_code == 201, resp.text
    return resp.json()["user"]


def _link_parts(link):
    # {base_url}/user/{id}/verify/{token}
    parts = link.rstrip("/").split("/")
    return parts[-3], parts[-1]


def _session_payload(client):
    from app.config import settings
    from app.users.security import decode_session_token
    return decode_session_token(client.cookies.get("accessToken"), settings)


# ============================================================================
# Signup
# ============================================================================

class TestSignup:
    def test_creates_one_user_and_one_token(self, client, fakes):
        from app.db.models import User, VerificationToken
        user = _signup(client)
        assert count_rows(User) == 1
        assert count_rows(VerificationToken, VerificationToken.user_id == user["id"]) == 1
        assert user["email"] == "ann@example.com"
        assert user["verified"] is False

    def test_response_never_contains_password(self, client):
        resp = client.post("/user/create", json=CREDENTIALS)
        body = resp.json()
        assert "password" not in body["user"]
        assert "s3cret-pass" not in resp.text

    def test_password_is_hashed_at_rest(self, client):
        from app.db.models import User
        _signup(client)
        (row,) = all_rows(User)
        assert row.password and row.password != "s3cret-pass"

    def test_sends_verification_link(self, client, fakes):
        user = _signup(client)
        assert len(fakes.mailer.sent) == 1
        to, name, link = fakes.mailer.sent[0]
        assert to == "ann@example.com" and name == "Ann"
        user_id, token = _link_parts(link)
        assert link.startswith("http://testserver/user/")
        assert user_id == user["id"]
        assert len(token) == 64

    def test_issues_session_cookie(self, client):
        _signup(client)
        payload = _session_payload(client)
        assert payload["user"]["email"] == "ann@example.com"
        assert "password" not in payload["user"]
        assert payload["exp"] - payload["iat"] == 3 * 24 * 3600

    def test_existing_email_returns_existing_user(self, client):
        from app.db.models import User
        _signup(client)
        resp = client.post("/user/create", json=CREDENTIALS)
        assert resp.status_code == 200
        assert resp.json()["message"] == "User already exists"
        assert resp.json()["verified"] is False
        assert count_rows(User) == 1

    def test_google_resignup_of_password_account_gets_no_session(self, client, fakes):
        _signup(client)
        user_id, token = _link_parts(fakes.mailer.sent[0][2])
        client.get(f"/user/{user_id}/verify/{token}")
        client.cookies.clear()

        resp = client.post("/user/create", json={"type": "google", "user": {"email": "ann@example.com", "name": "x"}})
        assert resp.status_code == 200
        assert resp.json()["message"] == "User already exists"
        assert "set-cookie" not in resp.headers
        assert client.cookies.get("accessToken") is None

    def test_google_resignup_of_google_account_gets_no_session(self, client):
        google_login(client, email="g@example.com")
        client.cookies.clear()
        resp = client.post("/user/create", json={"type": "google", "user": {"email": "g@example.com", "name": "G"}})
        assert resp.status_code == 200
        assert "set-cookie" not in resp.headers

    def test_missing_fields_is_400(self, client):
        resp = client.post("/user/create", json={"type": "credentials", "user": {"email": "x@example.com"}})
        assert resp.status_code == 400
        assert resp.json() == {"message": "Missing required fields"}

    def test_credentials_signup_requires_password(self, client):
        from app.db.models import User
        resp = client.post(
            "/user/create",
            json={"type": "credentials", "user": {"email": "x@example.com", "name": "X"}},
        )
        assert resp.status_code == 400
        assert count_rows(User) == 0

    def test_google_signup_is_verified_without_token(self, client, fakes):
        from app.db.models import VerificationToken
        user = google_login(client, email="g@example.com")
        assert user["verified"] is True
        assert count_rows(VerificationToken) == 0
        assert fakes.mailer.sent == []
        assert _session_payload(client)["user"]["email"] == "g@example.com"


# ============================================================================
# Verification link
# ============================================================================

class TestVerify:
    def test_valid_token_verifies_and_is_consumed(self, client, fakes):
        from app.db.models import User, VerificationToken
        _signup(client)
        user_id, token = _link_parts(fakes.mailer.sent[0][2])

        resp = client.get(f"/user/{user_id}/verify/{token}")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Email verified successfully"
        assert all_rows(User)[0].verified is True
        assert count_rows(VerificationToken) == 0
        assert _session_payload(client)["user"]["verified"] is True

    def test_wrong_token_leaves_state_unchanged(self, client, fakes):
        from app.db.models import User, VerificationToken
        user = _signup(client)

        resp = client.get(f"/user/{user['id']}/verify/{'0' * 64}")
        assert resp.status_code == 400
        assert resp.json() == {"message": "Invalid Link - Token not found"}
        assert all_rows(User)[0].verified is False
        assert count_rows(VerificationToken) == 1

    def test_second_use_of_token_is_rejected(self, client, fakes):
        _signup(client)
        user_id, token = _link_parts(fakes.mailer.sent[0][2])
        assert client.get(f"/user/{user_id}/verify/{token}").status_code == 200

        resp = client.get(f"/user/{user_id}/verify/{token}")
        assert resp.status_code == 400
        assert resp.json() == {"message": "Invalid Link - Token not found"}

    def test_unknown_user(self, client, fakes):
        _signup(client)
        _, token = _link_parts(fakes.mailer.sent[0][2])
        resp = client.get(f"/user/does-not-exist/verify/{token}")
        assert resp.status_code == 400
        assert resp.json() == {"message": "Invalid Link - User not found"}

    def test_token_of_another_user_is_rejected(self, client, fakes):
        from app.db.models import User
        _signup(client)
        _, token = _link_parts(fakes.mailer.sent[0][2])
        other = google_login(client, email="other@example.com")
        resp = client.get(f"/user/{other['id']}/verify/{token}")
        assert resp.status_code == 400
        assert all_rows(User, User.email == "ann@example.com")[0].verified is False


# ============================================================================
# Login / logout
# ============================================================================

class TestLogin:
    def _verified_user(self, client, fakes):
        _signup(client)
        user_id, token = _link_parts(fakes.mailer.sent[0][2])
        client.get(f"/user/{user_id}/verify/{token}")
        client.cookies.clear()
        return user_id

    def test_login_cookie_carries_sanitized_user(self, client, fakes):
        user_id = self._verified_user(client, fakes)
        resp = client.post("/user/login", json={"user": {"email": "ann@example.com", "password": "s3cret-pass"}})
        assert resp.status_code == 200
        assert resp.json()["message"] == "Login successful"

        payload = _session_payload(client)
        assert payload["user"]["email"] == "ann@example.com"
        assert payload["user"]["id"] == user_id
        assert "password" not in payload["user"]

    def test_cookie_attributes(self, client, fakes):
        self._verified_user(client, fakes)
        resp = client.post("/user/login", json={"user": {"email": "ann@example.com", "password": "s3cret-pass"}})
        header = resp.headers["set-cookie"].lower()
        assert header.startswith("accesstoken=")
        assert "httponly" in header
        assert "path=/" in header
        assert f"max-age={3 * 24 * 3600}" in header
        assert "samesite=lax" in header

    def test_wrong_password(self, client, fakes):
        self._verified_user(client, fakes)
        resp = client.post("/user/login", json={"user": {"email": "ann@example.com", "password": "nope"}})
        assert resp.status_code == 400
        assert resp.json() == {"message": "Invalid email or password"}
        assert client.cookies.get("accessToken") is None

    def test_google_login_rejected_for_password_account(self, client, fakes):
        self._verified_user(client, fakes)
        resp = client.post("/user/login", json={"type": "google", "user": {"email": "ann@example.com"}})
        assert resp.status_code == 400
        assert resp.json() == {"message": "Invalid email or password"}
        assert client.cookies.get("accessToken") is None

    def test_google_login_for_google_account(self, client):
        user = google_login(client, email="g@example.com")
        client.cookies.clear()
        resp = client.post("/user/login", json={"type": "google", "user": {"email": "g@example.com"}})
        assert resp.status_code == 200
        assert _session_payload(client)["user"]["id"] == user["id"]

    def test_unknown_email(self, client):
        resp = client.post("/user/login", json={"user": {"email": "ghost@example.com", "password": "x"}})
        assert resp.status_code == 400
        assert resp.json() == {"message": "Invalid email or password"}

    def test_unverified_login_rotates_token_and_resends(self, client, fakes):
        from app.db.models import VerificationToken
        _signup(client)
        client.cookies.clear()
        _, first_token = _link_parts(fakes.mailer.sent[0][2])

        resp = client.post("/user/login", json={"user": {"email": "ann@example.com", "password": "s3cret-pass"}})
        assert resp.status_code == 401
        assert resp.json() == {"message": "Email not verified. Verification link resent."}
        assert client.cookies.get("accessToken") is None

        tokens = all_rows(VerificationToken)
        assert len(tokens) == 1
        assert tokens[0].token != first_token
        assert len(fakes.mailer.sent) == 2
        assert _link_parts(fakes.mailer.sent[1][2])[1] == tokens[0].token

    def test_old_token_is_dead_after_rotation(self, client, fakes):
        _signup(client)
        user_id, first_token = _link_parts(fakes.mailer.sent[0][2])
        client.post("/user/login", json={"user": {"email": "ann@example.com", "password": "s3cret-pass"}})
        assert client.get(f"/user/{user_id}/verify/{first_token}").status_code == 400

    def test_logout_clears_cookie(self, client, fakes):
        self._verified_user(client, fakes)
        client.post("/user/login", json={"user": {"email": "ann@example.com", "password": "s3cret-pass"}})
        resp = client.post("/user/logout")
        assert resp.status_code == 200
        header = resp.headers["set-cookie"].lower()
        assert header.startswith("accesstoken=")
        assert "max-age=0" in header


# ============================================================================
# Session gate (/auth/verify)
# ============================================================================

class TestSessionGate:
    def test_no_cookie_is_401(self, client):
        resp = client.post("/auth/verify")
        assert resp.status_code == 401
        assert resp.json() == {"message": "Unauthorized"}

    def test_garbage_cookie_is_401(self, client):
        resp = client.post("/auth/verify", headers={"Cookie": "accessToken=not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json() == {"message": "Unauthorized"}

    def test_wrong_secret_is_401(self, client):
        token = jwt.encode({"user": {"id": "u1"}}, "some-other-secret", algorithm="HS256")
        resp = client.post("/auth/verify", headers={"Cookie": f"accessToken={token}"})
        assert resp.status_code == 401

    def test_expired_token_is_401(self, client):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        token = jwt.encode({"user": {"id": "u1"}, "exp": int(past.timestamp())}, "test-secret", algorithm="HS256")
        resp = client.post("/auth/verify", headers={"Cookie": f"accessToken={token}"})
        assert resp.status_code == 401

    def test_valid_session_returns_user(self, client):
        user = google_login(client)
        resp = client.post("/auth/verify")
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == user["id"]
        assert "searches" not in resp.json()["user"]


# ============================================================================
# Mailer
# ============================================================================

class TestMailer:
    def test_skips_when_smtp_not_configured(self):
        import asyncio
        from app.config import Settings
        from app.users.email_sender import Mailer
        mailer = Mailer(Settings(smtp_user="", smtp_password=""))
        assert asyncio.run(mailer.send_verification_email("a@example.com", "A", "http://x/verify")) is False

    def test_sends_over_starttls(self):
        import asyncio
        from unittest.mock import MagicMock, patch
        from app.config import Settings
        from app.users.email_sender import Mailer

        server = MagicMock()
        smtp = MagicMock()
        smtp.return_value.__enter__.return_value = server
        mailer = Mailer(Settings(smtp_user="bot@example.com", smtp_password="app-pass"))
        with patch("app.users.email_sender.smtplib.SMTP", smtp):
            sent = asyncio.run(mailer.send_verification_email("a@example.com", "A", "http://x/user/1/verify/t"))

        assert sent is True
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot@example.com", "app-pass")
        to_addr, body = server.sendmail.call_args[0][1:]
        assert to_addr == "a@example.com"
        assert "http://x/user/1/verify/t" in body

    def test_smtp_failure_is_swallowed(self):
        import asyncio
        import smtplib
        from unittest.mock import patch
        from app.config import Settings
        from app.users.email_sender import Mailer

        mailer = Mailer(Settings(smtp_user="bot@example.com", smtp_password="app-pass"))
        with patch("app.users.email_sender.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
            assert asyncio.run(mailer.send_verification_email("a@example.com", "A", "http://x")) is False
