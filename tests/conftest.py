import sys
import os
import tempfile
from pathlib import Path

# ensure project root is importable for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# keep uploads and the default database out of the working tree
os.environ.setdefault("STATIC_DIR", tempfile.mkdtemp(prefix="pawmatch-static-"))
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import auth
import main
import pets
from database import Base, get_db


@pytest.fixture()
def session_factory():
    """Fresh in-memory database per test, shared by the app and the test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[get_db] = override_get_db
    yield factory
    main.app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def _account(db, user_id, role, email=None):
    user = auth.ensure_user(db, user_id, role=role, email=email)
    return auth.AuthContext(user_id=user.id, role=user.role)


@pytest.fixture()
def shelter(db):
    return _account(db, "shelter-1", "shelter", email="happytails@example.org")


@pytest.fixture()
def other_shelter(db):
    return _account(db, "shelter-2", "shelter")


@pytest.fixture()
def volunteer(db):
    return _account(db, "volunteer-1", "volunteer")


@pytest.fixture()
def other_volunteer(db):
    return _account(db, "volunteer-2", "volunteer")


@pytest.fixture()
def pet(db, shelter):
    return pets.create_pet(db, shelter, {"name": "Milo", "sex": "male", "age": 2, "type": "cat"})


@pytest.fixture()
def make_client(session_factory):
    """Build a TestClient, optionally signed in through the auth callback."""
    clients = []

    def _make(user_id=None, role="volunteer", email=None):
        client = TestClient(main.app)
        clients.append(client)
        if user_id is not None:
            code = auth.issue_sign_in_code(user_id, email=email)
            r = client.get("/auth/callback", params={"code": code, "role": role}, follow_redirects=False)
            assert r.status_code == 303
        return client

    yield _make
    for client in clients:
        client.close()
