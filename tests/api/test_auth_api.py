"""
Authentication API tests.

Full local sign-up over HTTP with the verification email mocked out:
send-code -> verify -> register -> login -> me -> refresh -> logout.
"""

from unittest.mock import AsyncMock

import pytest

from reindeer_letter.core.middleware import limiter

EMAIL = "comet@example.com"
PASSWORD = "north-pole-42"


@pytest.fixture
def mail_outbox(mocker):
    """Captures verification codes instead of calling Postmark."""
    return mocker.patch(
        "reindeer_letter.modules.auth.service.send_verification_email",
        AsyncMock(return_value=True),
    )


def sign_up(client, mail_outbox, email=EMAIL, nickname="comet"):
    assert client.post("/auth/email/send-code", json={"email": email}).status_code == 200
    code = mail_outbox.call_args.args[1]
    assert client.post("/auth/email/verify", json={"email": email, "code": code}).status_code == 200
    return client.post(
        "/auth/register",
        json={"email": email, "password": PASSWORD, "nickname": nickname},
    )


class TestSignUp:

    def test_register_flow(self, client, mail_outbox):
        response = sign_up(client, mail_outbox)

        assert response.status_code == 201
        user = response.json()
        assert user["email"] == EMAIL
        assert user["nickname"] == "comet"
        assert user["public_id"]
        assert "password_hash" not in user

    def test_code_never_returned_to_client(self, client, mail_outbox):
        response = client.post("/auth/email/send-code", json={"email": EMAIL})

        code = mail_outbox.call_args.args[1]
        assert code not in response.text

    def test_register_without_verification(self, client):
        response = client.post(
            "/auth/register",
            json={"email": EMAIL, "password": PASSWORD, "nickname": "comet"},
        )

        assert response.status_code == 400

    def test_wrong_code(self, client, mail_outbox):
        client.post("/auth/email/send-code", json={"email": EMAIL})

        response = client.post("/auth/email/verify", json={"email": EMAIL, "code": "!!!!!!"})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_availability_checks(self, client, mail_outbox):
        sign_up(client, mail_outbox)

        assert client.get("/auth/check-email", params={"email": "new@example.com"}).json() == {"available": True}
        assert client.get("/auth/check-email", params={"email": EMAIL}).status_code == 409
        assert client.get("/auth/check-nickname", params={"nickname": "comet"}).status_code == 409

    def test_invalid_email_rejected_by_schema(self, client):
        assert client.post("/auth/email/send-code", json={"email": "not-an-email"}).status_code == 422


class TestSessionsApi:

    def test_login_me_refresh_logout(self, client, mail_outbox):
        sign_up(client, mail_outbox)

        response = client.post("/auth/login", json={"email": EMAIL, "password": PASSWORD})
        assert response.status_code == 200
        access_token = response.json()["access_token"]
        assert response.json()["token_type"] == "bearer"
        assert response.json()["user"]["email"] == EMAIL
        first_refresh = response.cookies.get("refresh_token")
        assert first_refresh

        headers = {"Authorization": f"Bearer {access_token}"}
        assert client.get("/auth/me", headers=headers).json()["nickname"] == "comet"

        # Refresh through the cookie rotates the token
        response = client.post("/auth/refresh")
        assert response.status_code == 200
        assert response.json()["refresh_token"] != first_refresh

        # The rotated-out token is dead
        client.cookies.clear()
        response = client.post("/auth/refresh", json={"refresh_token": first_refresh})
        assert response.status_code == 401

        # Logout revokes the current one as well
        current_refresh = client.post(
            "/auth/login", json={"email": EMAIL, "password": PASSWORD}
        ).cookies.get("refresh_token")
        assert client.post("/auth/logout", headers=headers).status_code == 200
        client.cookies.clear()
        response = client.post("/auth/refresh", json={"refresh_token": current_refresh})
        assert response.status_code == 401

    def test_wrong_password(self, client, mail_outbox):
        sign_up(client, mail_outbox)

        response = client.post("/auth/login", json={"email": EMAIL, "password": "wrong-password"})

        assert response.status_code == 401

    def test_me_requires_token(self, client):
        assert client.get("/auth/me").status_code == 401


class TestRateLimiting:

    def test_send_code_is_rate_limited(self, client, mail_outbox):
        limiter.enabled = True
        limiter.reset()
        try:
            statuses = [
                client.post("/auth/email/send-code", json={"email": EMAIL}).status_code
                for _ in range(6)
            ]
        finally:
            limiter.reset()
            limiter.enabled = False

        assert statuses[:5] == [200] * 5
        assert statuses[5] == 429

    def test_verify_is_rate_limited(self, client, mail_outbox):
        client.post("/auth/email/send-code", json={"email": EMAIL})
        limiter.enabled = True
        limiter.reset()
        try:
            statuses = [
                client.post("/auth/email/verify", json={"email": EMAIL, "code": "!!!!!!"}).status_code
                for _ in range(6)
            ]
        finally:
            limiter.reset()
            limiter.enabled = False

        assert statuses[:5] == [400] * 5
        assert statuses[5] == 429
