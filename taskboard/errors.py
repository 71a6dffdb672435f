"""API error kinds and the JSON error body they render to."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Iterable, Mapping, Sequence


def utc_timestamp() -> str:
    """Return the current UTC time as RFC 3339 with microseconds and a ``Z`` suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ErrorKind(enum.Enum):
    """Every error the API reports, with its message, debug message and HTTP status."""

    INTERNAL_SERVER_ERROR = (
        "Internal server error. Try again after some time.",
        "Internal server error. Please try again later.",
        HTTPStatus.INTERNAL_SERVER_ERROR,
    )
    BAD_REQUEST = (
        "Bad request.",
        "Bad request. Missing parameter or wrong payload.",
        HTTPStatus.BAD_REQUEST,
    )
    USER_NOT_FOUND = (
        "User not found for the given ID",
        "User not found for given ID",
        HTTPStatus.NOT_FOUND,
    )
    TASK_NOT_FOUND = (
        "Task not found for the given ID",
        "Task not found for given ID",
        HTTPStatus.NOT_FOUND,
    )
    AUTHENTICATION_ERROR = (
        "Authentication error.",
        "User not authenticated. Please reauthenticate and try again.",
        HTTPStatus.UNAUTHORIZED,
    )
    AGGREGATOR_ERROR = (
        "Aggregator Error",
        "MongoDB Aggregator Pipeline Error, Could'nt aggregate users-tasks",
        HTTPStatus.INTERNAL_SERVER_ERROR,
    )
    AUTHORIZATION_ERROR = (
        "Authorization error.",
        "User not authorized to access this resource.",
        HTTPStatus.FORBIDDEN,
    )
    VALIDATION_ERROR = (
        "Validation error on field",
        "Validation error",
        HTTPStatus.UNPROCESSABLE_ENTITY,
    )
    INVALID_CREDENTIAL = (
        "Invalid credential.",
        "Invalid Credential. Checking email address and password",
        HTTPStatus.UNAUTHORIZED,
    )

    def __init__(self, message: str, debug_message: str, status: HTTPStatus) -> None:
        self.message = message
        self.debug_message = debug_message
        self.status = status


@dataclass(frozen=True)
class FieldError:
    """One rejected field of a payload that failed validation."""

    field: str
    rejected_value: str
    message: str


def error_body(
    status: int,
    message: str,
    debug_message: str | None = None,
    sub_errors: Iterable[Mapping[str, Any]] = (),
) -> dict[str, Any]:
    """Build the standard JSON error payload."""
    return {
        "status": int(status),
        "time": utc_timestamp(),
        "message": message,
        "debug_message": debug_message,
        "sub_errors": [dict(sub) for sub in sub_errors],
    }


class ApiError(Exception):
    """An error that the API turns into a JSON error response."""

    def __init__(
        self,
        kind: ErrorKind,
        field_errors: Sequence[FieldError] | None = None,
        object_name: str = "",
    ) -> None:
        super().__init__(kind.message)
        self.kind = kind
        self.field_errors: tuple[FieldError, ...] = tuple(field_errors or ())
        self.object_name = object_name

    def status_code(self) -> int:
        """The HTTP status code of this error."""
        return int(self.kind.status)

    def debug_message(self) -> str:
        """The longer explanation sent as ``debug_message``."""
        return self.kind.debug_message

    def to_dict(self) -> dict[str, Any]:
        """Render the error as the JSON response body."""
        sub_errors: list[dict[str, str]] = []
        if self.kind is ErrorKind.VALIDATION_ERROR:
            sub_errors = [
                {
                    "object": self.object_name,
                    "field": error.field,
                    "rejected_value": error.rejected_value,
                    "message": error.message,
                }
                for error in self.field_errors
            ]
        return error_body(
            self.status_code(), self.kind.message, self.debug_message(), sub_errors
        )