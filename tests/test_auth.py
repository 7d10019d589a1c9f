from tickchat.security import create_access_token, decode_access_token, get_password_hash, verify_password


def test_register_login_and_me(client, alice):
    user = alice

    response = client.get("/api/v1/auth/me", headers=user.headers)

    assert response.status_code == 200
    assert response.json()["id"] == user.id
    assert response.json()["username"] == "alice"


def test_register_duplicate_is_rejected(client, alice):
    response = client.post(
        "/api/v1/auth/register",
        json={"username": "alice", "email": "other@example.com", "password": "password123"},
    )
    assert response.status_code == 400


def test_login_with_wrong_password(client, alice):
    response = client.post("/api/v1/auth/login-json", json={"username": "alice", "password": "wrong-password"})
    assert response.status_code == 401


def test_oauth2_form_login_and_refresh(client, alice):
    response = client.post("/api/v1/auth/login", data={"username": "alice", "password": "password123"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    refreshed = client.post("/api/v1/auth/refresh", headers={"Authorization": f"Bearer {token}"})
    assert refreshed.status_code == 200
    assert refreshed.json()["token_type"] == "bearer"


def test_invalid_token_is_rejected(client):
    response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_token_for_unknown_user_is_rejected(client):
    token = create_access_token({"sub": "ghost"})
    response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_password_hash_and_token_helpers():
    hashed = get_password_hash("password123")

    assert hashed != "password123"
    assert verify_password("password123", hashed)
    assert not verify_password("nope", hashed)
    assert decode_access_token(create_access_token({"sub": "alice"})) == "alice"
    assert decode_access_token("garbage") is None
