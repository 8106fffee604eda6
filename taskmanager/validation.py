"""Declarative request validation.

Each endpoint names a rule set. A rule set is a pydantic model whose field
constraints are the rules, plus a ``messages`` table with the client-facing
text for each field. :func:`validate_payload` returns the normalised payload
containing only the fields the client sent, or raises
:class:`~taskmanager.errors.ValidationFailed` listing one violation per
offending field.
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Annotated, Any, ClassVar, Dict, FrozenSet, List, Literal, Mapping, Optional, Tuple, Type

from fastapi import Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, ValidationError, field_validator

from .errors import ValidationFailed
from .models import PRIORITIES, TaskQuery

TASK_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=200)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]
Priority = Literal["low", "medium", "high"]
PersonName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
    "priority": "priority",
    "dueDate": "due_date",
    "completed": "completed",
}


def parse_due_date(value: object) -> Optional[datetime]:
    """Accept an ISO-8601 date or date-time string and return it in UTC.

    Naive values are taken as UTC. Offsets that push the instant outside the
    representable range are rejected like any other invalid date.
    """

    if value is None or isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text[-1] in "zZ":
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError("Due date must be a valid date")

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError as exc:
        raise ValueError("Due date must be a valid date") from exc


class RuleSet(BaseModel):
    """Base for rule sets. Unknown keys (``ownerId`` included) are dropped."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    messages: ClassVar[Dict[str, str]] = {}
    # Fields whose own validator messages are shown verbatim.
    detailed: ClassVar[FrozenSet[str]] = frozenset()


class SignupRules(RuleSet):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: PersonName

    messages: ClassVar[Dict[str, str]] = {
        "email": "Please enter a valid email address",
        "password": "Password must be at least 6 characters long",
        "name": "Name must be at least 2 characters long",
    }
    detailed: ClassVar[FrozenSet[str]] = frozenset({"password"})

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("password")
    @classmethod
    def _require_digit(cls, value: str) -> str:
        if not any(char.isdigit() for char in value):
            raise ValueError("Password must contain at least one number")
        return value


class LoginRules(RuleSet):
    email: EmailStr
    password: str = Field(..., min_length=1)

    messages: ClassVar[Dict[str, str]] = {
        "email": "Please enter a valid email address",
        "password": "Password is required",
    }

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class CreateTaskRules(RuleSet):
    title: Title
    description: Optional[Description] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")

    messages: ClassVar[Dict[str, str]] = {
        "title": "Task title must be between 3 and 200 characters",
        "description": "Description cannot exceed 500 characters",
        "priority": "Priority must be low, medium, or high",
        "dueDate": "Due date must be a valid date",
    }

    @field_validator("due_date", mode="before")
    @classmethod
    def _parse_due_date(cls, value: object) -> Optional[datetime]:
        return parse_due_date(value)


class UpdateTaskRules(CreateTaskRules):
    # Explicit nulls are rejected for these; description and dueDate accept
    # null to clear the stored value.
    title: Title = None  # type: ignore[assignment]
    priority: Priority = None  # type: ignore[assignment]
    completed: bool = None  # type: ignore[assignment]

    messages: ClassVar[Dict[str, str]] = {
        **CreateTaskRules.messages,
        "completed": "Completed must be a boolean value",
    }


class TaskIdRules(RuleSet):
    id: str = Field(..., pattern=TASK_ID_PATTERN.pattern)

    messages: ClassVar[Dict[str, str]] = {"id": "Invalid task ID"}


RULE_SETS: Dict[str, Type[RuleSet]] = {
    "signup": SignupRules,
    "login": LoginRules,
    "create_task": CreateTaskRules,
    "update_task": UpdateTaskRules,
    "task_id": TaskIdRules,
}


def _violation_message(rules: Type[RuleSet], field: str, error: Mapping[str, Any]) -> str:
    if error["type"] == "missing":
        return rules.messages.get(field, f"{field} is required")
    if error["type"] == "value_error" and field in rules.detailed:
        cause = (error.get("ctx") or {}).get("error")
        if cause is not None:
            return str(cause)
    return rules.messages.get(field, str(error["msg"]))


def collect_violations(rules: Type[RuleSet], exc: ValidationError) -> List[Tuple[str, str]]:
    """Flatten pydantic errors into ``(field, message)`` pairs, first per field."""

    violations: List[Tuple[str, str]] = []
    seen = set()
    for error in exc.errors():
        loc = error.get("loc") or ("body",)
        field = str(loc[0])
        if field in seen:
            continue
        seen.add(field)
        violations.append((field, _violation_message(rules, field, error)))
    return violations


def validate_payload(rule_set: str, payload: object) -> Dict[str, Any]:
    """Validate *payload* against the named rule set.

    Fields the client did not send are absent from the result.
    """

    rules = RULE_SETS[rule_set]
    if not isinstance(payload, dict):
        raise ValidationFailed([("body", "Request body must be a JSON object")])
    try:
        model = rules.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailed(collect_violations(rules, exc)) from exc
    return model.model_dump(exclude_unset=True)


def _parse_positive_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed >= 1 else default


def parse_list_query(params: Mapping[str, str]) -> TaskQuery:
    """Build a :class:`TaskQuery` from query-string values.

    Listing is lenient: unusable paging values fall back to the defaults and
    unknown filter or sort values are ignored.
    """

    completed: Optional[bool] = None
    raw_completed = params.get("completed")
    if raw_completed is not None:
        lowered = raw_completed.strip().lower()
        if lowered in {"true", "1"}:
            completed = True
        elif lowered in {"false", "0"}:
            completed = False

    priority = params.get("priority")
    if priority not in PRIORITIES:
        priority = None

    sort_by = SORT_FIELDS.get(params.get("sortBy", ""), "created_at")
    descending = params.get("sortOrder", "desc").strip().lower() != "asc"

    return TaskQuery(
        completed=completed,
        priority=priority,
        sort_by=sort_by,
        descending=descending,
        page=_parse_positive_int(params.get("page"), DEFAULT_PAGE),
        limit=min(_parse_positive_int(params.get("limit"), DEFAULT_LIMIT), MAX_LIMIT),
    )


class ValidatedBody:
    """FastAPI dependency that validates the JSON body against a rule set."""

    def __init__(self, rule_set: str) -> None:
        if rule_set not in RULE_SETS:
            raise KeyError(f"Unknown rule set '{rule_set}'")
        self.rule_set = rule_set

    async def __call__(self, request: Request) -> Dict[str, Any]:
        body = await request.body()
        if not body.strip():
            payload: object = {}
        else:
            try:
                payload = json.loads(body)
            except ValueError as exc:
                raise ValidationFailed([("body", "Request body must be valid JSON")]) from exc
        return validate_payload(self.rule_set, payload)


def valid_task_id(task_id: str) -> str:
    """Path dependency rejecting malformed task ids before any lookup."""

    validate_payload("task_id", {"id": task_id})
    return task_id


def list_query(request: Request) -> TaskQuery:
    return parse_list_query(request.query_params)


__all__ = [
    "RULE_SETS",
    "SORT_FIELDS",
    "TaskIdRules",
    "ValidatedBody",
    "collect_violations",
    "list_query",
    "parse_due_date",
    "parse_list_query",
    "valid_task_id",
    "validate_payload",
]
