"""Shared fixtures: a seeded store over in-memory storage and an API client bound to it."""

import os
import sys

import pytest
from fastapi.testclient import TestClient

# Modules under src/ are imported by bare name
_SRC = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir, "src"))
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from api import app, get_store  # noqa: E402
from application import SESSION_EMAIL_KEY, SESSION_USER_TYPE_KEY, DashboardStore  # noqa: E402
from infrastructure import InMemoryStorage, StorageUnitOfWork  # noqa: E402


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def store(storage):
    return DashboardStore(StorageUnitOfWork(storage), default_timezone="UTC")


@pytest.fixture
def signed_in(storage):
    storage.set_item(SESSION_USER_TYPE_KEY, "team")
    storage.set_item(SESSION_EMAIL_KEY, "alice@buildright.com")
    return "alice@buildright.com"


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
