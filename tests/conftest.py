import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db
from main import app


@pytest.fixture
def mongo_db():
    database = mongomock.MongoClient()["task_tracker_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(mongo_db):
    app.dependency_overrides[get_db] = lambda: mongo_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client):
    counter = {"n": 0}

    def _make(name=None, email=None, **extra):
        counter["n"] += 1
        payload = {
            "name": name or f"User {counter['n']}",
            "email": email or f"user{counter['n']}@llama.io",
            **extra,
        }
        r = client.post("/api/users", json=payload)
        assert r.status_code == 201, r.json()
        return r.json()["data"]

    return _make


@pytest.fixture
def make_task(client):
    def _make(name="Task", deadline="2030-01-01T00:00:00Z", **extra):
        r = client.post("/api/tasks", json={"name": name, "deadline": deadline, **extra})
        assert r.status_code == 201, r.json()
        return r.json()["data"]

    return _make
