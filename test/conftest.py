import itertools
import os
import tempfile

# Must be set before config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "1000000"
os.environ["LOGIN_RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["LOG_FILE"] = os.path.join(tempfile.gettempdir(), "counseling-tests.log")
os.environ["ENVIRONMENT"] = "test"

import pytest

from database.connection import Database
from database.models import UserRole
from services.auth_service import AuthService
from services.notification_service import NotificationDispatcher
from support import PASSWORD, FakePushChannel


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.engine.dispose()


@pytest.fixture
def db(database):
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def push():
    return FakePushChannel()


@pytest.fixture
def notifier(push):
    return NotificationDispatcher(push)


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(role=UserRole.STUDENT, email=None, password=PASSWORD, **kwargs):
        n = next(counter)
        kwargs.setdefault("first_name", role.value.title())
        kwargs.setdefault("last_name", str(n))
        if role == UserRole.STUDENT:
            kwargs.setdefault("student_id", f"2024-{n:04d}")
        return AuthService.create_user(
            db,
            email=email or f"{role.value}{n}@example.edu",
            password=password,
            role=role,
            **kwargs
        )

    return _make


@pytest.fixture
def student(make_user):
    return make_user(UserRole.STUDENT)


@pytest.fixture
def counselor(make_user):
    return make_user(UserRole.COUNSELOR)


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN)
