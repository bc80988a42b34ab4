import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SIGNED_URL_SECRET", "test-signing-secret")

import time

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from studystack.core.config import Settings
from studystack.core.identity import IdentityProvider
from studystack.core.services import AppServices
from studystack.core.storage import build_blob_store
from studystack.db.session import build_engine, build_session_factory
from studystack.main import create_app

IDENTITY_SECRET = "test-identity-secret"


def make_token(sub: str, email: str | None = None, name: str | None = None, role: str | None = None,
               secret: str = IDENTITY_SECRET, expires_in: int = 3600) -> str:
    claims = {"sub": sub, "exp": int(time.time()) + expires_in}
    if email:
        claims["email"] = email
    if name:
        claims["name"] = name
    if role:
        claims["public_metadata"] = {"role": role}
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL="sqlite://",
        SIGNED_URL_SECRET="test-signing-secret",
        IDENTITY_JWT_SECRET=IDENTITY_SECRET,
        UPLOAD_DIR=str(tmp_path / "uploads"),
        MAX_UPLOAD_MB=1,
        LOG_TO_FILE=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def services(settings):
    engine = build_engine("sqlite://", poolclass=StaticPool)
    return AppServices(
        engine=engine,
        session_factory=build_session_factory(engine),
        blob_store=build_blob_store(settings),
        identity=IdentityProvider.from_settings(settings),
    )


@pytest.fixture
def client(settings, services):
    with TestClient(create_app(settings, services)) as c:
        yield c


@pytest.fixture
def session_factory(services):
    return services.session_factory


@pytest.fixture
def auth():
    def _headers(sub: str, role: str | None = None, email: str | None = None) -> dict:
        token = make_token(sub, email=email or f"{sub}@example.edu", name=sub.title(), role=role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def viewer(auth):
    return auth("vera")


@pytest.fixture
def contributor(auth):
    return auth("carl", role="contributor")


@pytest.fixture
def other_contributor(auth):
    return auth("cleo", role="contributor")


@pytest.fixture
def admin(auth):
    return auth("ada", role="admin")


def link_form(**overrides) -> dict:
    data = {
        "title": "Linear algebra lecture series",
        "description": "Recorded lectures covering vector spaces and eigenvalues.",
        "subject": "mathematics",
        "resourceType": "LINK",
        "url": "https://example.org/linear-algebra",
        "tags": "Algebra, lectures",
    }
    data.update(overrides)
    return {k: v for k, v in data.items() if v is not None}


@pytest.fixture
def create_resource(client):
    def _create(headers: dict, files=None, **overrides) -> dict:
        resp = client.post("/api/resources", data=link_form(**overrides), files=files, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _create


@pytest.fixture
def form():
    return link_form


@pytest.fixture
def own_path(client):
    """Object key under the caller's upload folder, e.g. ``<user id>/notes.pdf``."""

    def _path(headers: dict, name: str) -> str:
        user_id = client.get("/api/auth/me", headers=headers).json()["data"]["id"]
        return f"{user_id}/{name}"

    return _path
