import os
import shutil
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest

TEST_DB_FILE = Path(tempfile.gettempdir()) / f"test_escala_{uuid4().hex}.db"
TEST_UPLOADS_DIR = Path(tempfile.gettempdir()) / f"test_escala_uploads_{uuid4().hex}"
TEST_JWT_SECRET = "test-jwt-secret"

os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_FILE.as_posix()}"
os.environ["SUPABASE_JWT_SECRET"] = TEST_JWT_SECRET
os.environ["SUPABASE_URL"] = ""
os.environ["APP_URL"] = "http://app.test"
os.environ["UPLOADS_DIR"] = str(TEST_UPLOADS_DIR)
os.environ["DB_BOOTSTRAP_MODE"] = "off"
os.environ["PUSH_API_SECRET"] = ""
os.environ["ADMIN_EMAIL"] = ""

from jose import jwt  # noqa: E402

from app.database.base import Base  # noqa: E402
from app.database.session import SessionLocal, engine  # noqa: E402
from app.models.team_function import TeamFunction  # noqa: E402
from app.models.user import User  # noqa: E402


@pytest.fixture(autouse=True)
def reset_database():
    engine.dispose()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def pytest_sessionfinish(session, exitstatus):
    engine.dispose()
    if TEST_DB_FILE.exists():
        TEST_DB_FILE.unlink()
    shutil.rmtree(TEST_UPLOADS_DIR, ignore_errors=True)


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db_session):
    def factory(full_name="Usuario Teste", role="user", team_function=None, email=None) -> User:
        suffix = uuid4().hex[:8]
        user = User(
            id=str(uuid4()),
            email=email or f"usuario.{suffix}@test.local",
            full_name=full_name,
            username=f"{full_name.lower().split()[0]}.{suffix}",
            role=role,
            team_function_id=team_function.id if team_function else None,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture
def admin_user(make_user):
    return make_user(full_name="Admin Escala", role="admin")


@pytest.fixture
def member_user(make_user):
    return make_user(full_name="Membro Escala", role="user")


@pytest.fixture
def make_function(db_session):
    def factory(label="Câmera", name=None, color="#062D49") -> TeamFunction:
        team_function = TeamFunction(
            name=name or f"{label.lower().replace(' ', '_')}_{uuid4().hex[:6]}",
            label=label,
            color=color,
        )
        db_session.add(team_function)
        db_session.commit()
        db_session.refresh(team_function)
        return team_function

    return factory


def build_token(user_id: str, email: str = "", full_name: str = "") -> str:
    claims = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "role": "authenticated",
        "user_metadata": {"full_name": full_name} if full_name else {},
    }
    return jwt.encode(claims, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers():
    def factory(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {build_token(user.id, user.email, user.full_name)}"}

    return factory


@pytest.fixture
def token_for():
    return build_token


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from app.main import app

    return TestClient(app)
