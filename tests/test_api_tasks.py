"""End-to-end tests for the owner-scoped task endpoints."""

import sys
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskmanager.api import create_app  # noqa: E402
from taskmanager.config import Settings  # noqa: E402
from taskmanager.database import Database  # noqa: E402

PASSWORD = "secret123"


def _build_app(tmp_path: Path):
    settings = Settings(database_path=tmp_path / "tasks.sqlite3", token_secret="tests-secret-key")
    database = Database(settings.database_path)
    database.initialize()
    return create_app(settings=settings, database=database)


def _login_headers(client: TestClient, email: str) -> dict:
    response = client.post("/api/auth/signup", json={"email": email, "password": PASSWORD, "name": "Tester"})
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


def _create(client: TestClient, headers: dict, **fields) -> dict:
    response = client.post("/api/tasks", json=fields, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]["task"]


def test_create_task_applies_defaults(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        response = client.post("/api/tasks", json={"title": "  Buy milk  "}, headers=headers)
        me = client.get("/api/auth/me", headers=headers).json()["data"]["user"]

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Task created successfully"
    task = body["data"]["task"]
    assert task["title"] == "Buy milk"
    assert task["completed"] is False
    assert task["priority"] == "medium"
    assert task["status"] == "pending"
    assert task["ownerId"] == me["id"]
    assert task["dueDate"] is None


def test_create_task_rejects_short_title(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        response = client.post("/api/tasks", json={"title": "ab", "priority": "urgent"}, headers=headers)
        listing = client.get("/api/tasks", headers=headers).json()

    assert response.status_code == 400
    errors = {error["field"]: error["message"] for error in response.json()["errors"]}
    assert errors == {
        "title": "Task title must be between 3 and 200 characters",
        "priority": "Priority must be low, medium, or high",
    }
    assert listing["data"]["pagination"]["totalTasks"] == 0


def test_validation_runs_before_authentication(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        response = client.post("/api/tasks", json={"title": "ab"})

    assert response.status_code == 400


def test_task_endpoints_require_token(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        response = client.get("/api/tasks")

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "No token provided"}


def test_owner_id_in_body_is_ignored(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        alice = _login_headers(client, "alice@example.com")
        bob = _login_headers(client, "bob@example.com")
        bob_id = client.get("/api/auth/me", headers=bob).json()["data"]["user"]["id"]

        task = _create(client, alice, title="Mine only", ownerId=bob_id)
        bob_listing = client.get("/api/tasks", headers=bob).json()

    assert task["ownerId"] != bob_id
    assert bob_listing["data"]["tasks"] == []


def test_other_users_tasks_are_not_found(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        alice = _login_headers(client, "alice@example.com")
        bob = _login_headers(client, "bob@example.com")
        task = _create(client, alice, title="Private task")

        responses = [
            client.get(f"/api/tasks/{task['id']}", headers=bob),
            client.put(f"/api/tasks/{task['id']}", json={"title": "Hijacked"}, headers=bob),
            client.patch(f"/api/tasks/{task['id']}/toggle", headers=bob),
            client.delete(f"/api/tasks/{task['id']}", headers=bob),
        ]
        still_there = client.get(f"/api/tasks/{task['id']}", headers=alice)

    for response in responses:
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Task not found"}
    assert still_there.status_code == 200
    assert still_there.json()["data"]["task"]["title"] == "Private task"


def test_malformed_task_id_is_rejected(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        response = client.get("/api/tasks/not-an-id", headers=headers)

    assert response.status_code == 400
    assert response.json()["errors"] == [{"field": "id", "message": "Invalid task ID"}]


def test_update_changes_only_supplied_fields(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        task = _create(client, headers, title="Write report", description="Quarterly numbers")
        response = client.put(f"/api/tasks/{task['id']}", json={"priority": "high"}, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Task updated successfully"
    updated = body["data"]["task"]
    assert updated["priority"] == "high"
    assert updated["title"] == "Write report"
    assert updated["description"] == "Quarterly numbers"
    assert updated["createdAt"] == task["createdAt"]
    assert updated["updatedAt"] >= task["updatedAt"]


def test_update_rejects_null_title_and_clears_description(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        task = _create(client, headers, title="Write report", description="Draft")
        rejected = client.put(f"/api/tasks/{task['id']}", json={"title": None}, headers=headers)
        cleared = client.put(f"/api/tasks/{task['id']}", json={"description": None}, headers=headers)

    assert rejected.status_code == 400
    assert rejected.json()["errors"][0]["field"] == "title"
    assert cleared.status_code == 200
    assert cleared.json()["data"]["task"]["description"] is None
    assert cleared.json()["data"]["task"]["title"] == "Write report"


def test_toggle_twice_restores_state(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        task = _create(client, headers, title="Water plants")
        first = client.patch(f"/api/tasks/{task['id']}/toggle", headers=headers)
        second = client.patch(f"/api/tasks/{task['id']}/toggle", headers=headers)

    assert first.json()["message"] == "Task completed"
    assert first.json()["data"]["task"]["completed"] is True
    assert first.json()["data"]["task"]["status"] == "completed"
    assert second.json()["message"] == "Task marked as pending"
    assert second.json()["data"]["task"]["completed"] is False


def test_delete_is_not_repeatable(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        task = _create(client, headers, title="Temporary")
        first = client.delete(f"/api/tasks/{task['id']}", headers=headers)
        second = client.delete(f"/api/tasks/{task['id']}", headers=headers)
        lookup = client.get(f"/api/tasks/{task['id']}", headers=headers)

    assert first.status_code == 200
    assert first.json()["message"] == "Task deleted successfully"
    assert first.json()["data"]["task"]["id"] == task["id"]
    assert second.status_code == 404
    assert lookup.status_code == 404


def test_list_filters_and_paginates(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        for index in range(5):
            task = _create(client, headers, title=f"High task {index}", priority="high")
            if index < 3:
                client.patch(f"/api/tasks/{task['id']}/toggle", headers=headers)
        _create(client, headers, title="Low task", priority="low")

        filtered = client.get(
            "/api/tasks",
            params={"completed": "true", "priority": "high", "limit": 2, "page": 2},
            headers=headers,
        ).json()["data"]
        everything = client.get("/api/tasks", headers=headers).json()["data"]

    assert len(filtered["tasks"]) == 1
    assert all(task["completed"] and task["priority"] == "high" for task in filtered["tasks"])
    assert filtered["pagination"] == {
        "currentPage": 2,
        "totalPages": 2,
        "totalTasks": 3,
        "limit": 2,
        "hasNextPage": False,
        "hasPrevPage": True,
    }
    assert everything["pagination"]["totalTasks"] == 6
    assert everything["tasks"][0]["title"] == "Low task"


def test_list_sorts_by_title_ascending(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        for title in ("Charlie", "alpha", "Bravo"):
            _create(client, headers, title=title)
        listing = client.get(
            "/api/tasks",
            params={"sortBy": "title", "sortOrder": "asc"},
            headers=headers,
        ).json()["data"]

    assert [task["title"] for task in listing["tasks"]] == ["alpha", "Bravo", "Charlie"]


def test_past_due_task_is_overdue(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        task = _create(client, headers, title="Pay rent", dueDate="2000-01-01T00:00:00Z")

    assert task["status"] == "overdue"
    assert task["dueDate"].startswith("2000-01-01T00:00:00")


def test_huge_page_number_returns_empty_page(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        _create(client, headers, title="Only task")
        response = client.get("/api/tasks", params={"page": "99999999999999999999"}, headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["tasks"] == []
    assert data["pagination"]["totalTasks"] == 1
    assert data["pagination"]["hasNextPage"] is False
    assert data["pagination"]["hasPrevPage"] is True


def test_due_date_overflowing_utc_is_a_validation_error(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        headers = _login_headers(client, "alice@example.com")
        created = client.post(
            "/api/tasks",
            json={"title": "Edge", "dueDate": "9999-12-31T23:30:00-05:00"},
            headers=headers,
        )
        task = _create(client, headers, title="Edge")
        updated = client.put(
            f"/api/tasks/{task['id']}",
            json={"dueDate": "9999-12-31T23:30:00-05:00"},
            headers=headers,
        )

    for response in (created, updated):
        assert response.status_code == 400
        assert response.json()["errors"] == [{"field": "dueDate", "message": "Due date must be a valid date"}]
