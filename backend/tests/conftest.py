import pytest
from fastapi.testclient import TestClient

from ephemeral_notes.backend import get_backend, reset_backend
from ephemeral_notes.config import get_settings

PASSWORD = "StrongPassw0rd!"


@pytest.fixture()
def data_dir(tmp_path, monkeypatch):
    # isolate data dir per test
    monkeypatch.setenv("APP_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("JWT_SECRET", "dev-secret-for-tests")
    monkeypatch.setenv("JWT_EXP_MINUTES", "15")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("PUBLIC_BASE_URL", "http://notes.test")
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "client-123")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "client-secret")
    monkeypatch.setenv("OAUTH_REDIRECT_URI", "http://localhost:8000/auth/oauth/google/callback")
    monkeypatch.setenv("OAUTH_AUTHORIZED_DOMAINS", "localhost")

    # drop anything cached from a previous test so the new env is picked up
    get_settings.cache_clear()
    reset_backend()
    yield tmp_path
    reset_backend()
    get_settings.cache_clear()


@pytest.fixture()
def backend(data_dir):
    return get_backend()


@pytest.fixture()
def client(data_dir):
    from ephemeral_notes.main import app

    return TestClient(app)


@pytest.fixture()
def login(client):
    """Register (once) and sign in; returns the bearer headers and the uid."""

    def _login(email: str, password: str = PASSWORD):
        client.post("/auth/register", json={"email": email, "password": password})
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        body = r.json()
        return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]["uid"]

    return _login
