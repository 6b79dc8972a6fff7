"""
Authentication API tests
"""
from datetime import timedelta

import pytest

from farmhub.core.errors import AuthenticationRequired
from farmhub.core.security import TokenClaims, TokenKind
from farmhub.models import EmailVerification, PasswordReset, User
from farmhub.models import Session as UserSession
from farmhub.services.auth_service import AuthService

PASSWORD = "SecurePass123"


def login(client, email, password=PASSWORD, **extra):
    return client.post("/api/auth/login", json={"email": email, "password": password, **extra})


class TestLogin:
    def test_login_returns_token_pair(self, client, settings, make_user):
        """
        Test: correct credentials for an active user
        Expected: 200 with access and refresh tokens, expiresIn from config
        """
        make_user("farmer@example.com")

        response = login(client, "farmer@example.com")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        tokens = body["data"]["tokens"]
        assert tokens["accessToken"]
        assert tokens["refreshToken"]
        assert tokens["tokenType"] == "Bearer"
        assert tokens["expiresIn"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert body["data"]["user"]["email"] == "farmer@example.com"

    def test_wrong_password(self, client, make_user):
        make_user("farmer@example.com")
        response = login(client, "farmer@example.com", "WrongPass123")
        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_REQUIRED"

    def test_inactive_account(self, client, make_user):
        make_user("farmer@example.com", is_active=False)
        response = login(client, "farmer@example.com")
        assert response.status_code == 403
        assert response.json()["error"] == "ACCOUNT_INACTIVE"

    def test_farm_pin_requires_membership(self, client, make_user, make_farm):
        owner = make_user("owner@example.com")
        outsider = make_user("outsider@example.com")
        farm = make_farm(owner)

        response = login(client, "outsider@example.com", farmId=str(farm.id))
        assert response.status_code == 403
        assert response.json()["error"] == "NO_FARM_ROLE_ASSIGNED"

        pinned = login(client, "owner@example.com", farmId=str(farm.id))
        access = pinned.json()["data"]["tokens"]["accessToken"]
        current = client.get("/api/farms/current", headers={"Authorization": f"Bearer {access}"})
        assert current.json()["data"]["source"] == "token"


class TestAccessToken:
    def test_missing_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["message"] == "Access token required"

    def test_expired_token(self, client, app, make_user):
        user = make_user("farmer@example.com")
        token = app.state.token_codec.issue(
            TokenClaims(subject_id=str(user.id), email=user.email),
            TokenKind.ACCESS,
            expires_delta=timedelta(minutes=-1),
        )
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["error"] == "TOKEN_EXPIRED"

    def test_refresh_token_cannot_authenticate(self, client, app, make_user):
        user = make_user("farmer@example.com")
        token = app.state.token_codec.issue(
            TokenClaims(subject_id=str(user.id), email=user.email), TokenKind.REFRESH
        )
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_unknown_subject(self, client, app):
        token = app.state.token_codec.issue(
            TokenClaims(subject_id="6a1d0a4e-8a43-4c55-8f0d-1d2c3b4a5e66", email="ghost@example.com"),
            TokenKind.ACCESS,
        )
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["error"] == "ACCOUNT_NOT_FOUND"

    def test_me_lists_permissions_and_farms(self, client, make_user, make_farm, auth_headers):
        user = make_user("owner@example.com", role_name="worker")
        make_farm(user, "North Field")

        data = client.get("/api/auth/me", headers=auth_headers(user)).json()["data"]

        assert data["role"]["name"] == "worker"
        assert "finance:create" in data["permissions"]
        assert data["farms"][0]["role"] == "OWNER"


class TestRefreshRotation:
    def test_refresh_token_works_once(self, client, make_user):
        """
        Test: use a refresh token, then replay it
        Expected: first use returns a new pair, the replay is rejected
        """
        make_user("farmer@example.com")
        first = login(client, "farmer@example.com").json()["data"]["tokens"]

        rotated = client.post("/api/auth/refresh-token", json={"refreshToken": first["refreshToken"]})
        assert rotated.status_code == 200
        second = rotated.json()["data"]["tokens"]
        assert second["refreshToken"] != first["refreshToken"]

        replay = client.post("/api/auth/refresh-token", json={"refreshToken": first["refreshToken"]})
        assert replay.status_code == 401
        assert replay.json()["message"] == "Refresh token has been revoked"

        again = client.post("/api/auth/refresh-token", json={"refreshToken": second["refreshToken"]})
        assert again.status_code == 200

    def test_concurrent_rotation_has_one_winner(self, app, db, make_user, monkeypatch):
        """
        Test: another worker rotates the same refresh token after this one has
              read the session but before it revokes it
        Expected: this rotation is rejected and only the winner's session stays active
        """
        user = make_user("farmer@example.com")
        settings, codec = app.state.settings, app.state.token_codec
        session = app.state.session_factory()
        service = AuthService(session, settings, codec)
        _, tokens = service.login("farmer@example.com", PASSWORD)
        issue_tokens = AuthService._issue_tokens

        def rotated_elsewhere_first(self, *args, **kwargs):
            monkeypatch.setattr(AuthService, "_issue_tokens", issue_tokens)
            other = app.state.session_factory()
            try:
                AuthService(other, settings, codec).refresh(tokens["refreshToken"])
            finally:
                other.close()
            return issue_tokens(self, *args, **kwargs)

        monkeypatch.setattr(AuthService, "_issue_tokens", rotated_elsewhere_first)
        try:
            with pytest.raises(AuthenticationRequired):
                service.refresh(tokens["refreshToken"])
        finally:
            session.close()

        db.expire_all()
        sessions = db.query(UserSession).filter(UserSession.user_id == user.id).all()
        assert len(sessions) == 2
        assert len([s for s in sessions if s.is_active]) == 1

    def test_access_token_is_not_a_refresh_token(self, client, make_user):
        make_user("farmer@example.com")
        tokens = login(client, "farmer@example.com").json()["data"]["tokens"]
        response = client.post("/api/auth/refresh-token", json={"refreshToken": tokens["accessToken"]})
        assert response.status_code == 401

    def test_logout_revokes_session(self, client, make_user):
        make_user("farmer@example.com")
        tokens = login(client, "farmer@example.com").json()["data"]["tokens"]
        headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

        response = client.post("/api/auth/logout", json={"refreshToken": tokens["refreshToken"]}, headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["revokedSessions"] == 1

        refreshed = client.post("/api/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
        assert refreshed.status_code == 401


class TestRegistration:
    def test_register_and_verify_email(self, client, db):
        response = client.post(
            "/api/auth/register",
            json={"email": "New.Farmer@Example.com", "password": PASSWORD, "firstName": "Ada"},
        )
        assert response.status_code == 201
        user_data = response.json()["data"]["user"]
        assert user_data["email"] == "new.farmer@example.com"
        assert user_data["emailVerified"] is False

        user = db.query(User).filter(User.email == "new.farmer@example.com").one()
        assert user.role.name == "viewer"
        token = db.query(EmailVerification).filter(EmailVerification.user_id == user.id).one().token

        verified = client.get(f"/api/auth/verify-email/{token}")
        assert verified.status_code == 200
        assert verified.json()["data"]["user"]["emailVerified"] is True

        reused = client.get(f"/api/auth/verify-email/{token}")
        assert reused.status_code == 409

    def test_duplicate_email(self, client, make_user):
        make_user("farmer@example.com")
        response = client.post(
            "/api/auth/register",
            json={"email": "farmer@example.com", "password": PASSWORD, "firstName": "Ada"},
        )
        assert response.status_code == 409

    @pytest.mark.parametrize("password", ["alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_passwords(self, client, password):
        response = client.post(
            "/api/auth/register",
            json={"email": "farmer@example.com", "password": password, "firstName": "Ada"},
        )
        assert response.status_code == 400


class TestPasswords:
    def test_change_password_revokes_sessions(self, client, make_user):
        make_user("farmer@example.com")
        tokens = login(client, "farmer@example.com").json()["data"]["tokens"]
        headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

        wrong = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "WrongPass123", "newPassword": "NewSecure456"},
            headers=headers,
        )
        assert wrong.status_code == 400

        changed = client.post(
            "/api/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "NewSecure456"},
            headers=headers,
        )
        assert changed.status_code == 200

        refreshed = client.post("/api/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
        assert refreshed.status_code == 401
        assert login(client, "farmer@example.com", "NewSecure456").status_code == 200

    def test_forgot_and_reset(self, client, db, make_user):
        """
        Test: request a reset for a known and an unknown email, then reset
        Expected: identical answers; the token works once
        """
        user = make_user("farmer@example.com")

        known = client.post("/api/auth/forgot-password", json={"email": "farmer@example.com"})
        unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json()["message"] == unknown.json()["message"]

        token = db.query(PasswordReset).filter(PasswordReset.user_id == user.id).one().token
        reset = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "Brand1NewPass"})
        assert reset.status_code == 200

        assert login(client, "farmer@example.com", "Brand1NewPass").status_code == 200

    def test_reset_limiter(self, client):
        for _ in range(3):
            client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
        response = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
        assert response.status_code == 429
        assert response.json()["max"] == 3
