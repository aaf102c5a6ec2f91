from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.infra.rate_limit import rate_limiter
from app.main import app
from app.services import user_service


@pytest.fixture()
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    # pysqlite: để SQLAlchemy tự phát BEGIN thì SAVEPOINT mới đúng nghĩa
    @event.listens_for(eng, "connect")
    def _connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    rate_limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()
    rate_limiter.reset()


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = "parent", email: str | None = None, password: str = "secret123", **kwargs):
        counter["n"] += 1
        return user_service.create_user(
            db,
            email=email or f"{role}{counter['n']}@test.vn",
            password=password,
            role=role,
            full_name=kwargs.pop("full_name", f"{role.title()} {counter['n']}"),
            **kwargs,
        )

    return _make


@pytest.fixture()
def auth():
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token(subject=str(user.id))}"}

    return _headers
