import os
import tempfile

# Settings are read at import time; point the default store at a scratch dir and keep tests offline.
os.environ["USER_STORAGE_DIR"] = tempfile.mkdtemp(prefix="mh-storage-")
for _var in ("OPENROUTER_API_KEY", "EMAIL_HOST", "EMAIL_USERNAME", "EMAIL_PASSWORD"):
    os.environ.pop(_var, None)

import pytest
from fastapi.testclient import TestClient

from app.db import get_store
from app.main import app
from app.services.otp_store import OtpStore
from app.storage import CsvStore


@pytest.fixture
def store(tmp_path):
    return CsvStore(tmp_path / "User storage")


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    app.state.otp_store = OtpStore()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def signup(client):
    """Register + verify a user through the API and return its bearer headers."""
    def _signup(username="alice", email=None, password="secret123"):
        email = email or f"{username}@example.com"
        r = client.post('/api/auth/register', json={
            'username': username, 'email': email, 'password': password, 'name': username.title(),
        })
        assert r.status_code == 200, r.text
        otp = r.json()['dev_otp']
        r2 = client.post('/api/auth/verify-email', json={'username': username, 'otp': otp})
        assert r2.status_code == 201, r2.text
        return {'Authorization': f"Bearer {r2.json()['token']}"}
    return _signup
