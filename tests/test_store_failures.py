import pytest
from pymongo.errors import PyMongoError

from repository import TaskRepository, UserRepository


def broken(*args, **kwargs):
    raise PyMongoError("store unavailable")


# -----------------------------
# Cascade writes fail after the primary write
# -----------------------------
def test_task_create_survives_failed_pending_add(client, make_user, monkeypatch):
    user = make_user()
    monkeypatch.setattr(UserRepository, "add_pending_task", broken)

    r = client.post("/api/tasks", json={"name": "T", "deadline": "2030-01-01T00:00:00Z", "assignedUser": user["_id"]})
    assert r.status_code == 201
    assert r.json()["data"]["assignedUser"] == user["_id"]
    assert client.get("/api/tasks", params={"count": "true"}).json()["data"] == 1


def test_task_update_survives_failed_reconciliation(client, make_user, make_task, monkeypatch):
    a = make_user(name="A")
    b = make_user(name="B")
    task = make_task(assignedUser=a["_id"])
    monkeypatch.setattr(UserRepository, "add_pending_task", broken)
    monkeypatch.setattr(UserRepository, "remove_pending_task", broken)

    r = client.put(f"/api/tasks/{task['_id']}", json={"name": "T", "deadline": "2030-01-01T00:00:00Z", "assignedUser": b["_id"]})
    assert r.status_code == 200
    assert r.json()["data"]["assignedUserName"] == "B"


def test_task_delete_survives_failed_pending_remove(client, make_user, make_task, monkeypatch):
    user = make_user()
    task = make_task(assignedUser=user["_id"])
    monkeypatch.setattr(UserRepository, "remove_pending_task", broken)

    r = client.delete(f"/api/tasks/{task['_id']}")
    assert r.status_code == 200
    assert client.get(f"/api/tasks/{task['_id']}").status_code == 404


def test_user_update_survives_failed_resync(client, make_user, make_task, monkeypatch):
    user = make_user(name="Alice")
    make_task(assignedUser=user["_id"])
    monkeypatch.setattr(TaskRepository, "assign_many", broken)

    r = client.put(f"/api/users/{user['_id']}", json={"name": "Alicia", "email": user["email"]})
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "Alicia"


def test_user_delete_survives_failed_unassign(client, make_user, monkeypatch):
    user = make_user()
    monkeypatch.setattr(TaskRepository, "unassign_user", broken)

    r = client.delete(f"/api/users/{user['_id']}")
    assert r.status_code == 204
    assert client.get(f"/api/users/{user['_id']}").status_code == 404


# -----------------------------
# Primary writes fail
# -----------------------------
@pytest.mark.parametrize(
    "repo, method, request_args, message",
    [
        (UserRepository, "create", ("POST", "/api/users", {"name": "A", "email": "a@llama.io"}), "Server error creating user"),
        (TaskRepository, "create", ("POST", "/api/tasks", {"name": "T", "deadline": "2030-01-01T00:00:00Z"}), "Server error creating task"),
    ],
)
def test_failed_create_is_server_error(client, monkeypatch, repo, method, request_args, message):
    monkeypatch.setattr(repo, method, broken)
    verb, path, body = request_args
    r = client.request(verb, path, json=body)
    assert r.status_code == 500
    assert r.json() == {"message": message, "data": {}}
    assert r.headers["access-control-allow-origin"] == "*"


def test_failed_task_update_is_server_error(client, make_task, monkeypatch):
    task = make_task()
    monkeypatch.setattr(TaskRepository, "update", broken)
    r = client.put(f"/api/tasks/{task['_id']}", json={"name": "T", "deadline": "2030-01-01T00:00:00Z"})
    assert r.status_code == 500
    assert r.json() == {"message": "Server error updating task", "data": {}}


def test_failed_user_update_is_server_error(client, make_user, monkeypatch):
    user = make_user()
    monkeypatch.setattr(UserRepository, "update", broken)
    r = client.put(f"/api/users/{user['_id']}", json={"name": "B", "email": "b@llama.io"})
    assert r.status_code == 500
    assert r.json() == {"message": "Server error updating user", "data": {}}


def test_failed_deletes_are_server_errors(client, make_user, make_task, monkeypatch):
    user = make_user()
    task = make_task()
    monkeypatch.setattr(UserRepository, "delete", broken)
    monkeypatch.setattr(TaskRepository, "delete", broken)

    r = client.delete(f"/api/users/{user['_id']}")
    assert r.status_code == 500
    assert r.json() == {"message": "Server error deleting user", "data": {}}

    r = client.delete(f"/api/tasks/{task['_id']}")
    assert r.status_code == 500
    assert r.json() == {"message": "Server error deleting task", "data": {}}
