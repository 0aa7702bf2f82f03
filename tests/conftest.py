import os

os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["ALGORITHM"] = "HS256"
os.environ["TIMEZONE"] = "UTC"

from datetime import datetime

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient
from pytz import UTC


DAY = (2026, 3, 2)


def at(hour: int, minute: int = 0, second: int = 0, day: tuple = DAY) -> datetime:
    """An aware UTC timestamp on the test day."""
    return datetime(*day, hour, minute, second, tzinfo=UTC)


def stored(hour: int, minute: int = 0, second: int = 0, day: tuple = DAY) -> datetime:
    """The same instant as read back from MongoDB (naive UTC)."""
    return datetime(*day, hour, minute, second)


@pytest.fixture
def mongo_db():
    return AsyncMongoMockClient()["attendance_test"]


@pytest.fixture
def attendance_collection(mongo_db):
    return mongo_db.attendance


@pytest.fixture
def users_collection(mongo_db):
    return mongo_db.users


@pytest.fixture
def audit_logs_collection(mongo_db):
    return mongo_db.audit_logs


@pytest.fixture
def user_id():
    return str(ObjectId())
