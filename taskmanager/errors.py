"""Error taxonomy shared by the stores, services and HTTP layer."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple


class APIError(Exception):
    """Base class for errors that map onto a failure envelope."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, object]:
        return {"success": False, "message": self.message}


class ValidationFailed(APIError):
    """Raised when a payload violates its rule set. No mutation has happened."""

    status_code = 400
    default_message = "Validation failed"

    def __init__(
        self,
        violations: Sequence[Tuple[str, str]],
        message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.violations: List[Tuple[str, str]] = list(violations)

    def to_payload(self) -> Dict[str, object]:
        payload = super().to_payload()
        payload["errors"] = [
            {"field": field, "message": message} for field, message in self.violations
        ]
        return payload


class Conflict(APIError):
    status_code = 400
    default_message = "Resource already exists"


class Unauthorized(APIError):
    status_code = 401
    default_message = "Not authorized"


class NotFound(APIError):
    """Missing resources and resources owned by someone else look the same."""

    status_code = 404
    default_message = "Not found"


class Internal(APIError):
    status_code = 500


__all__ = [
    "APIError",
    "Conflict",
    "Internal",
    "NotFound",
    "Unauthorized",
    "ValidationFailed",
]
