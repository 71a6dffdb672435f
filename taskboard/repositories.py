"""MongoDB access for users, tasks and registered accounts."""

from __future__ import annotations

import logging
from typing import Any

from pymongo.errors import PyMongoError

from taskboard.models import Auth, Task, TaskAggregate, User, new_id

USER_COLLECTION = "user"
AUTH_COLLECTION = "auth"
TASK_COLLECTION = "task"

_log = logging.getLogger(__name__)


class UserRepository:
    """Stores users in the ``user`` collection."""

    def __init__(self, database: Any) -> None:
        self.collection = database[USER_COLLECTION]

    def create(self, user: User) -> User | None:
        """Insert a copy of ``user`` under a fresh id and return it as stored."""
        document = User(
            name=user.name, location=user.location, title=user.title, id=new_id()
        )
        result = self.collection.insert_one(document.to_dict())
        stored = self.collection.find_one({"_id": result.inserted_id})
        return None if stored is None else User.from_dict(stored)

    def get(self, user_id: str) -> User | None:
        """Return the user with ``user_id``, or ``None``."""
        stored = self.collection.find_one({"_id": user_id})
        return None if stored is None else User.from_dict(stored)

    def update(self, user_id: str, user: User) -> int:
        """Overwrite the user's fields; return the number of matched documents."""
        changes = {
            "$set": {
                "_id": user.id,
                "name": user.name,
                "location": user.location,
                "title": user.title,
            }
        }
        return self.collection.update_one({"_id": user_id}, changes).matched_count

    def delete(self, user_id: str) -> int:
        """Delete the user; return the number of deleted documents."""
        return self.collection.delete_one({"_id": user_id}).deleted_count

    def list(self, offset: int, limit: int) -> list[dict[str, str]]:
        """Return one page of users sorted by name."""
        cursor = self.collection.find(
            {}, skip=offset, limit=limit, sort=[("name", 1)]
        )
        users = (User.from_dict(document) for document in cursor)
        return [
            {
                "id": user.id or "",
                "name": user.name,
                "location": user.location,
                "title": user.title,
            }
            for user in users
        ]

    def count(self) -> int:
        """Return the total number of users."""
        return self.collection.count_documents({})


class TaskRepository:
    """Stores tasks in the ``task`` collection."""

    def __init__(self, database: Any) -> None:
        self.collection = database[TASK_COLLECTION]

    def create(self, task: Task) -> Task | None:
        """Insert a copy of ``task`` under a fresh id and return it as stored."""
        document = Task(title=task.title, body=task.body, id=new_id())
        result = self.collection.insert_one(document.to_dict())
        stored = self.collection.find_one({"_id": result.inserted_id})
        return None if stored is None else Task.from_dict(stored)

    def get(self, task_id: str) -> Task | None:
        """Return the task with ``task_id``, or ``None``."""
        stored = self.collection.find_one({"_id": task_id})
        return None if stored is None else Task.from_dict(stored)

    def update(self, task_id: str, task: Task) -> int:
        """Set title and body; return the number of matched documents."""
        changes = {"$set": {"title": task.title, "body": task.body}}
        return self.collection.update_one({"_id": task_id}, changes).matched_count

    def delete(self, task_id: str) -> int:
        """Delete the task; return the number of deleted documents."""
        return self.collection.delete_one({"_id": task_id}).deleted_count

    def list(self, offset: int, limit: int) -> list[dict[str, str]]:
        """Return one page of tasks sorted by title."""
        cursor = self.collection.find(
            {}, skip=offset, limit=limit, sort=[("title", 1)]
        )
        tasks = (Task.from_dict(document) for document in cursor)
        return [
            {"id": task.id or "", "title": task.title, "body": task.body}
            for task in tasks
        ]

    def count(self) -> int:
        """Return the total number of tasks."""
        return self.collection.count_documents({})

    def aggregate_by_status(self) -> list[TaskAggregate]:
        """Count tasks per status; groups that do not decode are skipped."""
        pipeline = [
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
            {"$project": {"_id": 0, "status": "$_id", "count": 1}},
        ]
        results = []
        for document in self.collection.aggregate(pipeline):
            try:
                results.append(TaskAggregate.from_dict(document))
            except ValueError as error:
                _log.warning("Skipping aggregated group %r: %s", document, error)
        return results


class AuthRepository:
    """Stores registered accounts in the ``auth`` collection."""

    def __init__(self, database: Any) -> None:
        self.collection = database[AUTH_COLLECTION]

    def register(self, auth: Auth) -> Any:
        """Insert the account and return its inserted id."""
        return self.collection.insert_one(auth.to_dict()).inserted_id

    def email_available(self, email: str) -> bool:
        """True unless an account with ``email`` exists; database errors count as free."""
        try:
            return self.collection.count_documents({"email": email}) == 0
        except PyMongoError:
            return True

    def fetch_by_email(self, email: str) -> Auth | None:
        """Return the account with ``email``, or ``None`` if absent or unreadable."""
        try:
            stored = self.collection.find_one({"email": email})
        except PyMongoError:
            return None
        if stored is None:
            return None
        try:
            return Auth.from_dict(stored)
        except ValueError:
            return None