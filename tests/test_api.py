import pytest
from fastapi.testclient import TestClient

from trailauth.core.errors import ConfigurationError
from trailauth.main import create_app, lifespan

from conftest import make_settings

ALICE = {"email": "alice@example.com", "password": "Passw0rd!"}


@pytest.fixture
def client(tmp_path, channel, clock):
    app = create_app(make_settings(tmp_path), notifier=channel, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _register(client, body=ALICE):
    response = client.post("/auth/register", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "healthy"
    assert "X-Request-ID" in response.headers


def test_register_returns_tokens_and_identity(client):
    data = _register(client, {**ALICE, "nickname": "alice"})

    assert data["accessToken"]
    assert data["refreshToken"]
    assert data["tokenType"] == "bearer"
    assert data["expiresIn"] == 900
    assert data["identity"]["email"] == "alice@example.com"
    assert data["identity"]["nickname"] == "alice"
    assert data["identity"]["language"] == "ko"
    assert data["identity"]["distanceUnit"] == "km"
    assert "password" not in str(data["identity"]).lower()


def test_error_body_shape(client):
    _register(client)
    response = client.post("/auth/register", json=ALICE)

    assert response.status_code == 409
    body = response.json()
    assert body["error"]["code"] == "EMAIL_ALREADY_EXISTS"
    assert body["error"]["message"]
    assert "timestamp" in body


def test_request_validation_is_400(client):
    response = client.post("/auth/register", json={"email": "nope", "password": "short"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"]["code"] == "VALIDATION_FAILED"
    fields = {e["field"] for e in body["error"]["details"]["errors"]}
    assert {"email", "password"} <= fields


def test_scenario(client):
    registered = _register(client)

    wrong = client.post("/auth/login", json={"email": ALICE["email"], "password": "wrong"})
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "INVALID_CREDENTIALS"

    login = client.post("/auth/login", json=ALICE)
    assert login.status_code == 200
    logged_in = login.json()
    assert logged_in["refreshToken"] != registered["refreshToken"]

    refreshed = client.post("/auth/refresh-token", json={"refreshToken": logged_in["refreshToken"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["accessToken"]
    assert "refreshToken" not in refreshed.json()

    withdraw = client.delete("/users/me", headers=_bearer(logged_in["accessToken"]))
    assert withdraw.status_code == 200
    assert withdraw.json()["sessionsRevoked"] == 2

    for token in (registered["refreshToken"], logged_in["refreshToken"]):
        response = client.post("/auth/refresh-token", json={"refreshToken": token})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"

    me = client.get("/users/me", headers=_bearer(logged_in["accessToken"]))
    assert me.status_code == 403
    assert me.json()["error"]["code"] == "FORBIDDEN"


def test_login_unknown_email_is_404(client):
    response = client.post("/auth/login", json=ALICE)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "USER_NOT_FOUND"


def test_protected_routes_require_bearer(client):
    response = client.get("/users/me")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"
    assert response.headers["WWW-Authenticate"] == "Bearer"

    response = client.get("/users/me", headers=_bearer("garbage.token.value"))
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_TOKEN"


def test_expired_access_token(client, clock):
    data = _register(client)
    clock.advance(minutes=20)

    response = client.get("/users/me", headers=_bearer(data["accessToken"]))
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "TOKEN_EXPIRED"


def test_me(client):
    data = _register(client, {**ALICE, "nickname": "alice"})

    response = client.get("/users/me", headers=_bearer(data["accessToken"]))

    assert response.status_code == 200
    assert response.json()["id"] == data["identity"]["id"]
    assert response.json()["nickname"] == "alice"


def test_logout_twice(client):
    data = _register(client)

    first = client.post("/auth/logout", headers=_bearer(data["accessToken"]))
    second = client.post("/auth/logout", headers=_bearer(data["accessToken"]))

    assert first.status_code == 200
    assert first.json()["revoked"] is True
    assert second.status_code == 200
    assert second.json()["revoked"] is False
    response = client.post("/auth/refresh-token", json={"refreshToken": data["refreshToken"]})
    assert response.status_code == 401


def test_logout_without_credential(client):
    response = client.post("/auth/logout")
    assert response.status_code == 401


def test_logout_all(client):
    data = _register(client)
    client.post("/auth/login", json=ALICE)

    response = client.post("/auth/logout-all", headers=_bearer(data["accessToken"]))

    assert response.status_code == 200
    assert response.json()["message"] == "Revoked 2 session(s)"


def test_change_password(client):
    data = _register(client)
    headers = _bearer(data["accessToken"])

    wrong = client.patch(
        "/users/me/password",
        json={"currentPassword": "nope", "newPassword": "N3wPassword!"},
        headers=headers,
    )
    assert wrong.status_code == 401

    ok = client.patch(
        "/users/me/password",
        json={"currentPassword": ALICE["password"], "newPassword": "N3wPassword!"},
        headers=headers,
    )
    assert ok.status_code == 200
    login = client.post("/auth/login", json={"email": ALICE["email"], "password": "N3wPassword!"})
    assert login.status_code == 200


def test_forgot_password(client, channel, clock):
    _register(client)

    sent = client.post("/auth/forgot-password/send", json={"email": ALICE["email"]})
    assert sent.status_code == 200
    assert sent.json()["delivered"] is True
    assert channel.last_code not in sent.text

    limited = client.post("/auth/forgot-password/send", json={"email": ALICE["email"]})
    assert limited.status_code == 429
    assert limited.json()["error"]["details"]["retryAfterSeconds"] == 300
    assert limited.headers["Retry-After"] == "300"

    bad = client.post(
        "/auth/forgot-password/verify",
        json={"email": ALICE["email"], "code": "12345", "newPassword": "N3wPassword!"},
    )
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "INVALID_VERIFICATION_CODE"

    verified = client.post(
        "/auth/forgot-password/verify",
        json={"email": ALICE["email"], "code": channel.last_code, "newPassword": "N3wPassword!"},
    )
    assert verified.status_code == 200

    reused = client.post(
        "/auth/forgot-password/verify",
        json={"email": ALICE["email"], "code": channel.last_code, "newPassword": "Other123!"},
    )
    assert reused.status_code == 400

    clock.advance(minutes=5)
    again = client.post("/auth/forgot-password/send", json={"email": ALICE["email"]})
    assert again.status_code == 200


def test_forgot_password_unknown_email(client):
    response = client.post("/auth/forgot-password/send", json={"email": "nobody@example.com"})
    assert response.status_code == 404


async def test_app_refuses_to_start_without_secret(tmp_path, channel):
    app = create_app(make_settings(tmp_path, jwt_secret_key=None), notifier=channel)

    with pytest.raises(ConfigurationError):
        async with lifespan(app):
            pass
