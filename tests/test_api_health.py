"""Tests for the info, health and error-envelope behaviour of the API."""

import sys
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskmanager.api import create_app  # noqa: E402
from taskmanager.config import Settings  # noqa: E402
from taskmanager.memory import MemoryDatabase  # noqa: E402


class UnreachableStore(MemoryDatabase):
    def ping(self):
        raise RuntimeError("database is locked")


class BrokenListingStore(MemoryDatabase):
    def list_tasks_for_user(self, owner_id, query):
        raise RuntimeError("boom")


def _settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "database_path": tmp_path / "tasks.sqlite3",
        "token_secret": "tests-secret-key",
        "store": "memory",
    }
    values.update(overrides)
    return Settings(**values)


def _build_app(tmp_path: Path, store=None, **overrides):
    return create_app(settings=_settings(tmp_path, **overrides), database=store or MemoryDatabase())


def _headers(client: TestClient) -> dict:
    response = client.post(
        "/api/auth/signup",
        json={"email": "ops@example.com", "password": "secret123", "name": "Ops"},
    )
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


def test_root_and_api_info(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        root = client.get("/").json()
        info = client.get("/api").json()

    assert root["version"] == "1.0.0"
    assert root["endpoints"] == {"auth": "/api/auth", "tasks": "/api/tasks", "health": "/api/health"}
    assert info["message"] == "Task Manager API is running!"


def test_liveness_report(tmp_path: Path) -> None:
    app = _build_app(tmp_path, environment="development")

    with TestClient(app) as client:
        response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["environment"] == "development"
    assert body["uptime"] >= 0


def test_database_health_reports_connected_store(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        response = client.get("/api/health/db")

    assert response.status_code == 200
    assert response.json()["database"]["status"] == "connected"
    assert response.json()["database"]["driver"] == "memory"


def test_unreachable_store_is_unhealthy(tmp_path: Path) -> None:
    app = _build_app(tmp_path, store=UnreachableStore())

    with TestClient(app) as client:
        database = client.get("/api/health/db")
        full = client.get("/api/health/full")

    assert database.status_code == 503
    assert database.json()["success"] is False
    assert database.json()["database"] == {"status": "disconnected", "error": "database is locked"}
    assert full.status_code == 503
    assert full.json()["services"] == {"api": "healthy", "database": "unhealthy", "authentication": "healthy"}


def test_full_health_includes_system_details(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        response = client.get("/api/health/full")

    assert response.status_code == 200
    body = response.json()
    assert set(body["system"]) == {"platform", "pythonVersion", "pid"}
    assert body["services"]["database"] == "healthy"


def test_unknown_route_uses_error_envelope(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Route not found"}


def test_unexpected_error_hides_details_in_production(tmp_path: Path) -> None:
    app = _build_app(tmp_path, store=BrokenListingStore())

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/api/tasks", headers=_headers(client))

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}


def test_unexpected_error_includes_stack_in_development(tmp_path: Path) -> None:
    app = _build_app(tmp_path, store=BrokenListingStore(), environment="development")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/api/tasks", headers=_headers(client))

    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "boom"
    assert body["error"] == "RuntimeError"
    assert any("boom" in line for line in body["stack"])


def test_cors_preflight_allows_any_origin_by_default(tmp_path: Path) -> None:
    app = _build_app(tmp_path)

    with TestClient(app) as client:
        response = client.options(
            "/api/tasks",
            headers={
                "Origin": "http://localhost:3001",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "authorization, content-type",
            },
        )
        simple = client.get("/api", headers={"Origin": "http://localhost:3001"})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]
    assert "authorization" in response.headers["access-control-allow-headers"].lower()
    assert simple.headers["access-control-allow-origin"] == "*"


def test_cors_preflight_honours_configured_origins(tmp_path: Path) -> None:
    app = _build_app(tmp_path, cors_origins=("http://localhost:3001",))

    with TestClient(app) as client:
        allowed = client.options(
            "/api/tasks",
            headers={"Origin": "http://localhost:3001", "Access-Control-Request-Method": "GET"},
        )
        denied = client.options(
            "/api/tasks",
            headers={"Origin": "http://evil.example", "Access-Control-Request-Method": "GET"},
        )

    assert allowed.status_code == 200
    assert allowed.headers["access-control-allow-origin"] == "http://localhost:3001"
    assert denied.status_code == 400
    assert "access-control-allow-origin" not in denied.headers
