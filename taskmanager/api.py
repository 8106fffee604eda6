"""FastAPI application exposing the authentication and task endpoints."""
from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .database import Database
from .errors import APIError, Unauthorized
from .health import API_VERSION, create_health_router
from .memory import MemoryDatabase
from .models import TaskQuery, User
from .security import BearerAuth, TokenService
from .tasks import TaskService
from .validation import ValidatedBody, list_query, valid_task_id

logger = logging.getLogger("taskmanager.api")

Store = Union[Database, MemoryDatabase]

ENDPOINTS = {
    "auth": "/api/auth",
    "tasks": "/api/tasks",
    "health": "/api/health",
}


def build_store(settings: Settings) -> Store:
    """Create and initialise the store selected by *settings*."""

    if settings.store == "memory":
        return MemoryDatabase()
    database = Database(settings.database_path)
    database.initialize()
    return database


def _success(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"success": True}
    if message is not None:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    return payload


def create_app(
    *,
    settings: Settings | None = None,
    database: Store | None = None,
    tokens: TokenService | None = None,
) -> FastAPI:
    if settings is None:
        settings = load_settings()

    if database is None:
        database = build_store(settings)

    if tokens is None:
        tokens = TokenService(settings.token_secret, ttl=settings.token_ttl)

    auth = BearerAuth(tokens, database)
    task_service = TaskService(database)

    app = FastAPI(
        title="Task Manager API",
        description="Per-user task lists behind bearer token authentication",
        version=API_VERSION,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.tokens = tokens
    app.state.task_service = task_service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root() -> Dict[str, object]:
        return {
            "message": "Task Manager Backend API is running!",
            "version": API_VERSION,
            "endpoints": ENDPOINTS,
        }

    @app.get("/api")
    async def api_info() -> Dict[str, object]:
        return {
            "message": "Task Manager API is running!",
            "version": API_VERSION,
            "endpoints": ENDPOINTS,
        }

    auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

    @auth_router.post("/signup", status_code=status.HTTP_201_CREATED)
    def signup(payload: Dict[str, Any] = Depends(ValidatedBody("signup"))) -> Dict[str, Any]:
        user = database.create_user(payload["email"], payload["password"], payload["name"])
        logger.info("Registered user %s", user.id)
        return _success(
            {"user": user.to_dict(), "token": tokens.issue(user.id)},
            "User registered successfully",
        )

    @auth_router.post("/login")
    def login(payload: Dict[str, Any] = Depends(ValidatedBody("login"))) -> Dict[str, Any]:
        user = database.authenticate_user(payload["email"], payload["password"])
        if user is None:
            logger.warning("Failed login attempt for %s", payload["email"])
            raise Unauthorized("Invalid credentials")
        logger.info("User %s logged in", user.id)
        return _success(
            {"user": user.to_dict(), "token": tokens.issue(user.id)},
            "Login successful",
        )

    @auth_router.get("/me")
    def read_current_user(current_user: User = Depends(auth)) -> Dict[str, Any]:
        return _success({"user": current_user.to_dict()})

    tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])

    @tasks_router.post("", status_code=status.HTTP_201_CREATED)
    def create_task(
        payload: Dict[str, Any] = Depends(ValidatedBody("create_task")),
        current_user: User = Depends(auth),
    ) -> Dict[str, Any]:
        task = task_service.create(current_user, payload)
        return _success({"task": task.to_dict()}, "Task created successfully")

    @tasks_router.get("")
    def list_tasks(
        query: TaskQuery = Depends(list_query),
        current_user: User = Depends(auth),
    ) -> Dict[str, Any]:
        page = task_service.list(current_user, query)
        return _success(
            {
                "tasks": [task.to_dict() for task in page.tasks],
                "pagination": page.pagination(),
            }
        )

    @tasks_router.get("/{task_id}")
    def read_task(
        task_id: str = Depends(valid_task_id),
        current_user: User = Depends(auth),
    ) -> Dict[str, Any]:
        task = task_service.get(current_user, task_id)
        return _success({"task": task.to_dict()})

    @tasks_router.put("/{task_id}")
    def update_task(
        task_id: str = Depends(valid_task_id),
        payload: Dict[str, Any] = Depends(ValidatedBody("update_task")),
        current_user: User = Depends(auth),
    ) -> Dict[str, Any]:
        task = task_service.update(current_user, task_id, payload)
        return _success({"task": task.to_dict()}, "Task updated successfully")

    @tasks_router.delete("/{task_id}")
    def delete_task(
        task_id: str = Depends(valid_task_id),
        current_user: User = Depends(auth),
    ) -> Dict[str, Any]:
        task = task_service.delete(current_user, task_id)
        return _success({"task": task.to_dict()}, "Task deleted successfully")

    @tasks_router.patch("/{task_id}/toggle")
    def toggle_task(
        task_id: str = Depends(valid_task_id),
        current_user: User = Depends(auth),
    ) -> Dict[str, Any]:
        task = task_service.toggle(current_user, task_id)
        message = "Task completed" if task.completed else "Task marked as pending"
        return _success({"task": task.to_dict()}, message)

    app.include_router(auth_router)
    app.include_router(tasks_router)
    app.include_router(create_health_router(database, settings))

    @app.exception_handler(APIError)
    async def handle_api_error(_: Request, exc: APIError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = "Route not found"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        payload: Dict[str, Any] = {"success": False, "message": "Internal server error"}
        if settings.debug:
            payload["message"] = str(exc) or "Something went wrong!"
            payload["error"] = type(exc).__name__
            payload["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)

    return app


__all__ = ["ENDPOINTS", "build_store", "create_app"]
