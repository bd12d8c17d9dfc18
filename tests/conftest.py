"""Pytest fixtures for push tests."""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from coach_push.api.deps import get_db
from coach_push.db import models  # noqa: F401  # Imported for side effects
from coach_push.db.base import Base
from coach_push.db.models import NativePushToken, PushSubscription, User
from coach_push.main import create_app


@pytest.fixture(scope="session")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(
        bind=engine,
        tables=[User.__table__, PushSubscription.__table__, NativePushToken.__table__],
    )
    try:
        yield engine
    finally:
        Base.metadata.drop_all(
            bind=engine,
            tables=[NativePushToken.__table__, PushSubscription.__table__, User.__table__],
        )


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine
    )
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.query(NativePushToken).delete()
        db.query(PushSubscription).delete()
        db.query(User).delete()
        db.commit()
        db.close()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client


def _make_user(db_session: Session, email: str, role: str) -> User:
    user = User(email=email, full_name=email.split("@")[0].title(), role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def coach_user(db_session: Session) -> User:
    return _make_user(db_session, "coach@example.com", "coach")


@pytest.fixture()
def client_user(db_session: Session) -> User:
    return _make_user(db_session, "client@example.com", "client")
