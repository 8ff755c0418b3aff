from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.api.deps import (
    get_apple_auth_use_case,
    get_current_user,
    get_current_user_use_case,
    get_delete_account_use_case,
    get_google_auth_use_case,
    get_list_sessions_use_case,
    get_logout_session_use_case,
    get_refresh_session_use_case,
    get_update_profile_use_case,
)
from app.application.dto.auth import (
    AuthBundleOutput,
    LogoutOutput,
    RefreshSessionOutput,
    SessionSummaryOutput,
)
from app.application.use_cases.auth_common import build_auth_user_output
from app.domain.entities.user import User
from app.domain.exceptions import (
    InvalidCredentialError,
    InvalidInputError,
    NotFoundError,
    ProviderUnavailableError,
    RefreshTokenReuseError,
    TokenExpiredError,
)
from app.main import app


NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)

USER = User(
    id="11111111-1111-1111-1111-111111111111",
    email="driver@example.com",
    email_verified=True,
    full_name="Road Warrior",
    avatar_url=None,
    timezone="America/New_York",
    locale="en-US",
    subscription_tier="free",
    subscription_status="active",
    trial_ends_at=NOW + timedelta(days=14),
    created_at=NOW,
    updated_at=NOW,
)


class FakeAuthenticateUseCase:
    def __init__(self, *, is_new_user: bool = True, error: Exception | None = None):
        self.is_new_user = is_new_user
        self.error = error
        self.commands = []

    def execute(self, command):
        self.commands.append(command)
        if self.error is not None:
            raise self.error
        return AuthBundleOutput(
            user=build_auth_user_output(USER),
            session_id="22222222-2222-2222-2222-222222222222",
            access_token="access-1",
            refresh_token="refresh-1",
            expires_in=900,
            refresh_expires_at=NOW + timedelta(days=30),
            is_new_user=self.is_new_user,
        )


class FakeRefreshUseCase:
    def __init__(self, error: Exception | None = None):
        self.error = error

    def execute(self, command):
        if self.error is not None:
            raise self.error
        return RefreshSessionOutput(
            access_token="access-2",
            refresh_token="refresh-2",
            expires_in=900,
            refresh_expires_at=NOW + timedelta(days=30),
        )


class FakeLogoutUseCase:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.commands = []

    def execute(self, command):
        self.commands.append(command)
        if self.error is not None:
            raise self.error
        return LogoutOutput(revoked_count=1)


class FakeListSessionsUseCase:
    def execute(self, *, user_id: str):
        return [
            SessionSummaryOutput(
                id="22222222-2222-2222-2222-222222222222",
                device_id="iphone-1",
                device_name="Driver's iPhone",
                device_model="iPhone15,2",
                last_active_at=NOW,
                created_at=NOW,
                is_current=True,
            )
        ]


class FakeDeleteAccountUseCase:
    def __init__(self):
        self.deleted: list[str] = []

    def execute(self, *, user_id: str) -> None:
        self.deleted.append(user_id)


class FakeUpdateProfileUseCase:
    def __init__(self):
        self.commands = []

    def execute(self, command):
        self.commands.append(command)
        return build_auth_user_output(replace(USER, **command.changes))


class FakeCurrentUserUseCase:
    def execute(self, *, access_token: str) -> User:
        if access_token == "expired":
            raise TokenExpiredError("access")
        return USER


@pytest.fixture
def client():
    app.dependency_overrides[get_current_user_use_case] = lambda: FakeCurrentUserUseCase()
    yield TestClient(app)
    app.dependency_overrides.clear()


def _sign_in_as_user():
    app.dependency_overrides[get_current_user] = lambda: USER


def test_google_sign_in_returns_201_for_new_user(client):
    use_case = FakeAuthenticateUseCase(is_new_user=True)
    app.dependency_overrides[get_google_auth_use_case] = lambda: use_case

    response = client.post(
        "/v1/auth/google",
        json={"id_token": "google-id-token", "device_id": "iphone-1", "device_name": "Driver's iPhone"},
        headers={"User-Agent": "MileageMax/1.0", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["token_type"] == "Bearer"
    assert payload["access_token"] == "access-1"
    assert payload["refresh_token"] == "refresh-1"
    assert payload["expires_in"] == 900
    assert payload["is_new_user"] is True
    assert payload["user"]["email"] == "driver@example.com"
    command = use_case.commands[0]
    assert command.provider == "google"
    assert command.credential.identity_token == "google-id-token"
    assert command.device.device_id == "iphone-1"
    assert command.device.ip_address == "203.0.113.7"
    assert command.device.user_agent == "MileageMax/1.0"


def test_google_sign_in_returns_200_for_returning_user(client):
    app.dependency_overrides[get_google_auth_use_case] = lambda: FakeAuthenticateUseCase(is_new_user=False)

    response = client.post("/v1/auth/google", json={"id_token": "google-id-token", "device_id": "iphone-1"})

    assert response.status_code == 200
    assert response.json()["is_new_user"] is False


def test_invalid_credential_never_leaks_details(client):
    error = InvalidCredentialError("Signature verification failed for kid abc")
    app.dependency_overrides[get_google_auth_use_case] = lambda: FakeAuthenticateUseCase(error=error)

    response = client.post("/v1/auth/google", json={"id_token": "bad", "device_id": "iphone-1"})

    assert response.status_code == 401
    assert response.json()["detail"] == {"code": "INVALID_CREDENTIAL", "message": "Authentication failed."}


def test_provider_outage_maps_to_502(client):
    error = ProviderUnavailableError("Identity provider keys are unavailable.")
    app.dependency_overrides[get_google_auth_use_case] = lambda: FakeAuthenticateUseCase(error=error)

    response = client.post("/v1/auth/google", json={"id_token": "token", "device_id": "iphone-1"})

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "PROVIDER_UNAVAILABLE"


def test_apple_sign_in_passes_name_and_email_hints(client):
    use_case = FakeAuthenticateUseCase()
    app.dependency_overrides[get_apple_auth_use_case] = lambda: use_case

    response = client.post(
        "/v1/auth/apple",
        json={
            "identity_token": "apple-id-token",
            "authorization_code": "code-1",
            "device_id": "iphone-1",
            "user": {"email": "hidden@privaterelay.appleid.com", "name": {"first_name": "Jane", "last_name": "Driver"}},
        },
    )

    assert response.status_code == 201
    credential = use_case.commands[0].credential
    assert credential.authorization_code == "code-1"
    assert credential.email_hint == "hidden@privaterelay.appleid.com"
    assert credential.full_name_hint == "Jane Driver"


def test_apple_sign_in_requires_authorization_code(client):
    app.dependency_overrides[get_apple_auth_use_case] = lambda: FakeAuthenticateUseCase()

    response = client.post("/v1/auth/apple", json={"identity_token": "apple-id-token", "device_id": "iphone-1"})

    assert response.status_code == 422


def test_refresh_returns_rotated_pair(client):
    app.dependency_overrides[get_refresh_session_use_case] = lambda: FakeRefreshUseCase()

    response = client.post("/v1/auth/refresh", json={"refresh_token": "refresh-1", "device_id": "iphone-1"})

    assert response.status_code == 200
    assert response.json() == {
        "access_token": "access-2",
        "refresh_token": "refresh-2",
        "token_type": "Bearer",
        "expires_in": 900,
    }


def test_refresh_reuse_is_reported_as_revoked_session(client):
    error = RefreshTokenReuseError("Token has already been used.")
    app.dependency_overrides[get_refresh_session_use_case] = lambda: FakeRefreshUseCase(error=error)

    response = client.post("/v1/auth/refresh", json={"refresh_token": "refresh-1", "device_id": "iphone-1"})

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "SESSION_REVOKED"


def test_logout_requires_bearer_token(client):
    app.dependency_overrides[get_logout_session_use_case] = lambda: FakeLogoutUseCase()

    response = client.post("/v1/auth/logout", json={"all_devices": True})

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "UNAUTHORIZED"


def test_expired_access_token_is_reported_as_token_expired(client):
    app.dependency_overrides[get_logout_session_use_case] = lambda: FakeLogoutUseCase()

    response = client.post("/v1/auth/logout", headers={"Authorization": "Bearer expired"})

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "TOKEN_EXPIRED"


def test_logout_returns_204_and_forwards_selectors(client):
    use_case = FakeLogoutUseCase()
    app.dependency_overrides[get_logout_session_use_case] = lambda: use_case

    response = client.post(
        "/v1/auth/logout",
        json={"device_id": "iphone-1"},
        headers={"Authorization": "Bearer access-1"},
    )

    assert response.status_code == 204
    command = use_case.commands[0]
    assert command.user_id == USER.id
    assert command.device_id == "iphone-1"
    assert command.all_devices is False


def test_logout_without_body_is_accepted(client):
    use_case = FakeLogoutUseCase()
    app.dependency_overrides[get_logout_session_use_case] = lambda: use_case
    _sign_in_as_user()

    response = client.post("/v1/auth/logout")

    assert response.status_code == 204
    assert use_case.commands[0].session_id is None


def test_list_sessions(client):
    app.dependency_overrides[get_list_sessions_use_case] = lambda: FakeListSessionsUseCase()
    _sign_in_as_user()

    response = client.get("/v1/auth/sessions")

    assert response.status_code == 200
    sessions = response.json()["sessions"]
    assert len(sessions) == 1
    assert sessions[0]["device_id"] == "iphone-1"
    assert sessions[0]["is_current"] is True


def test_revoke_unknown_session_is_404(client):
    app.dependency_overrides[get_logout_session_use_case] = lambda: FakeLogoutUseCase(error=NotFoundError("Session"))
    _sign_in_as_user()

    response = client.delete("/v1/auth/sessions/not-mine")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NOT_FOUND"


def test_me_returns_current_user(client):
    _sign_in_as_user()

    response = client.get("/v1/auth/me")

    assert response.status_code == 200
    assert response.json()["id"] == USER.id
    assert response.json()["subscription_tier"] == "free"


def test_delete_me_returns_204(client):
    use_case = FakeDeleteAccountUseCase()
    app.dependency_overrides[get_delete_account_use_case] = lambda: use_case
    _sign_in_as_user()

    response = client.delete("/v1/auth/me")

    assert response.status_code == 204
    assert use_case.deleted == [USER.id]


def test_patch_me_forwards_only_the_fields_that_were_sent(client):
    use_case = FakeUpdateProfileUseCase()
    app.dependency_overrides[get_update_profile_use_case] = lambda: use_case
    _sign_in_as_user()

    response = client.patch("/v1/auth/me", json={"full_name": "Jane Driver", "avatar_url": None})

    assert response.status_code == 200
    assert response.json()["full_name"] == "Jane Driver"
    assert response.json()["avatar_url"] is None
    assert response.json()["timezone"] == "America/New_York"
    command = use_case.commands[0]
    assert command.user_id == USER.id
    assert command.changes == {"full_name": "Jane Driver", "avatar_url": None}


def test_patch_me_rejects_oversized_and_malformed_fields(client):
    use_case = FakeUpdateProfileUseCase()
    app.dependency_overrides[get_update_profile_use_case] = lambda: use_case
    _sign_in_as_user()

    too_long = client.patch("/v1/auth/me", json={"locale": "x" * 11})
    bad_avatar = client.patch("/v1/auth/me", json={"avatar_url": "javascript:alert(1)"})

    assert too_long.status_code == 422
    assert bad_avatar.status_code == 422
    assert use_case.commands == []


def test_patch_me_maps_domain_validation_to_422(client):
    class RejectingUseCase:
        def execute(self, command):
            raise InvalidInputError("Field 'full_name' cannot be empty.")

    app.dependency_overrides[get_update_profile_use_case] = lambda: RejectingUseCase()
    _sign_in_as_user()

    response = client.patch("/v1/auth/me", json={"full_name": None})

    assert response.status_code == 422
    assert response.json()["detail"] == {"code": "INVALID_INPUT", "message": "Field 'full_name' cannot be empty."}
