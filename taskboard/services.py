"""Business rules for users and tasks on top of their repositories."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, TypeVar

from pymongo.errors import PyMongoError

from taskboard.errors import ApiError, ErrorKind
from taskboard.models import Task, TaskAggregate, User
from taskboard.pagination import Pagination, build_list_response

_log = logging.getLogger(__name__)

# Database failures and documents that do not decode both count as storage errors.
_STORE_ERRORS = (PyMongoError, ValueError)

_T = TypeVar("_T")


def _store_call(operation: Callable[[], _T]) -> _T:
    """Run a repository operation, turning storage failures into a 500 error."""
    try:
        return operation()
    except _STORE_ERRORS as error:
        _log.error("Error: %s", error)
        raise ApiError(ErrorKind.INTERNAL_SERVER_ERROR) from error


class _DocumentService:
    """Create, read, update, delete and list for one kind of document."""

    _resource = ""
    _not_found = ErrorKind.INTERNAL_SERVER_ERROR
    repository: Any

    def _create(self, item: Any) -> Any:
        created = _store_call(lambda: self.repository.create(replace(item, id=None)))
        if created is None:
            raise ApiError(ErrorKind.INTERNAL_SERVER_ERROR)
        return created

    def _existing(self, item_id: str, action: str) -> Any:
        found = _store_call(lambda: self.repository.get(item_id))
        if found is None:
            _log.warning("%s with id - %s not found to %s", self._resource, item_id, action)
            raise ApiError(self._not_found)
        return found

    def _get(self, item_id: str) -> Any:
        if not item_id:
            _log.warning("Empty id given to get %s by ID", self._resource)
            raise ApiError(ErrorKind.BAD_REQUEST)
        return self._existing(item_id, "get by ID")

    def _update(self, item_id: str, item: Any) -> Any:
        if not item_id:
            raise ApiError(ErrorKind.BAD_REQUEST)
        data = replace(item, id=item_id)
        matched = _store_call(lambda: self.repository.update(item_id, data))
        if matched != 1:
            _log.warning("%s with id -%s not found to update by ID", self._resource, item_id)
            raise ApiError(self._not_found)
        return self._existing(item_id, "read after update")

    def _delete(self, item_id: str) -> None:
        if not item_id:
            raise ApiError(self._not_found)
        deleted = _store_call(lambda: self.repository.delete(item_id))
        if deleted != 1:
            _log.warning("%s with id -%s not found for delete by ID", self._resource, item_id)
            raise ApiError(self._not_found)

    def _list(self, pagination: Pagination | None) -> dict[str, Any]:
        offset, limit = (pagination or Pagination()).effective()
        items = _store_call(lambda: self.repository.list(offset, limit))
        try:
            total = self.repository.count()
        except _STORE_ERRORS as error:
            _log.warning("Could not count %s: %s", self._resource, error)
            total = 0
        try:
            return build_list_response(self._resource, items, offset, limit, total)
        except ValueError as error:
            _log.error("Error : %s", error)
            raise ApiError(ErrorKind.INTERNAL_SERVER_ERROR) from error


class UserService(_DocumentService):
    """Operations on users."""

    _resource = "users"
    _not_found = ErrorKind.USER_NOT_FOUND

    def __init__(self, repository: Any) -> None:
        self.repository = repository

    def create_user(self, user: User) -> User:
        """Store a new user under a fresh id and return it."""
        return self._create(user)

    def get_user(self, user_id: str) -> User:
        """Return the user with ``user_id``."""
        return self._get(user_id)

    def update_user(self, user_id: str, user: User) -> User:
        """Replace the user's fields and return the stored user."""
        return self._update(user_id, user)

    def delete_user(self, user_id: str) -> None:
        """Delete the user with ``user_id``."""
        self._delete(user_id)

    def list_users(self, pagination: Pagination | None = None) -> dict[str, Any]:
        """Return one page of users with paging metadata and links."""
        return self._list(pagination)


class TaskService(_DocumentService):
    """Operations on tasks."""

    _resource = "tasks"
    _not_found = ErrorKind.TASK_NOT_FOUND

    def __init__(self, repository: Any) -> None:
        self.repository = repository

    def create_task(self, task: Task) -> Task:
        """Store a new task under a fresh id and return it."""
        return self._create(task)

    def get_task(self, task_id: str) -> Task:
        """Return the task with ``task_id``."""
        return self._get(task_id)

    def update_task(self, task_id: str, task: Task) -> Task:
        """Replace the task's title and body and return the stored task."""
        return self._update(task_id, task)

    def delete_task(self, task_id: str) -> None:
        """Delete the task with ``task_id``."""
        self._delete(task_id)

    def list_tasks(self, pagination: Pagination | None = None) -> dict[str, Any]:
        """Return one page of tasks with paging metadata and links."""
        return self._list(pagination)

    def aggregate_tasks(self) -> list[TaskAggregate]:
        """Count tasks per status."""
        try:
            return self.repository.aggregate_by_status()
        except PyMongoError as error:
            _log.error("Error while aggregating: %s", error)
            raise ApiError(ErrorKind.AGGREGATOR_ERROR) from error