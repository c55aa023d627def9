import pytest

from auth import SessionManager, authenticate
from config import settings

API = "/api"


def _login(client, username="admin", password="password"):
    return client.post(f"{API}/auth/login", json={"username": username, "password": password})


def test_authenticate(seeded):
    assert authenticate(seeded.store, "staff", "password").name == "John Doe"
    assert authenticate(seeded.store, "staff", "wrong") is None
    assert authenticate(seeded.store, "nobody", "password") is None


def test_session_manager_tokens_are_distinct(seeded):
    sessions = SessionManager()
    user = seeded.store.get_user_by_username("admin")

    first, second = sessions.create(user), sessions.create(user)

    assert first != second
    assert sessions.resolve(first) == user.id
    assert sessions.destroy(first) is True
    assert sessions.destroy(first) is False
    assert sessions.resolve(first) is None
    assert len(sessions) == 1


def test_login_sets_cookie_and_returns_profile(client):
    response = _login(client)

    assert response.status_code == 200
    assert response.json() == {"id": 1, "username": "admin", "name": "Administrator", "role": "admin"}
    assert settings.session_cookie_name in response.cookies


def test_login_rejects_bad_password(client):
    response = _login(client, password="nope")
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_me_requires_session(client):
    response = client.get(f"{API}/auth/me")
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


def test_me_after_login(client):
    _login(client, "staff")
    response = client.get(f"{API}/auth/me")
    assert response.status_code == 200
    assert response.json()["username"] == "staff"
    assert "password" not in response.json()


def test_logout(client):
    _login(client)
    first = client.post(f"{API}/auth/logout")
    assert first.json() == {"message": "Logged out successfully"}

    client.cookies.clear()
    assert client.get(f"{API}/auth/me").status_code == 401
    assert client.post(f"{API}/auth/logout").json() == {"message": "No active session"}


def test_deleted_user_session_is_dropped(client, seeded, app):
    _login(client)
    seeded.store.users.delete(1)

    response = client.get(f"{API}/auth/me")

    assert response.status_code == 401
    assert response.json()["detail"] == "User not found"
    assert len(app.state.sessions) == 0


def test_data_routes_open_by_default(client):
    assert client.get(f"{API}/books").status_code == 200


@pytest.fixture
def auth_required(monkeypatch):
    monkeypatch.setattr(settings, "require_auth", True)


def test_data_routes_need_login_when_required(client, auth_required):
    assert client.get(f"{API}/books").status_code == 401
    assert client.get("/health").status_code == 200

    _login(client)
    assert client.get(f"{API}/books").status_code == 200
