import os
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest

TEST_DB_FILE = Path(tempfile.gettempdir()) / f"test_inventario_pro_{uuid4().hex}.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_FILE.as_posix()}"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ALGORITHM", "HS256")
os.environ.setdefault("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
os.environ.setdefault("DB_BOOTSTRAP_MODE", "off")

from app.core.security import get_password_hash  # noqa: E402
from app.database.base import Base  # noqa: E402
from app.database.session import SessionLocal, engine  # noqa: E402
from app.models import app_config, audit_log, equipment, license, user  # noqa: E402,F401
from app.models.user import User  # noqa: E402


@pytest.fixture
def reset_database():
    engine.dispose()
    if TEST_DB_FILE.exists():
        TEST_DB_FILE.unlink()
    Base.metadata.create_all(bind=engine)
    try:
        yield
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        if TEST_DB_FILE.exists():
            TEST_DB_FILE.unlink()


@pytest.fixture
def db_session(reset_database):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db_session):
    def factory(role: str = "User", username: str | None = None, password: str = "Senha@123") -> User:
        name = username or f"user.{uuid4().hex[:8]}"
        row = User(
            username=name,
            real_name=name.replace(".", " ").title(),
            email=f"{name}@test.local",
            password=get_password_hash(password),
            role=role,
        )
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        return row

    return factory
