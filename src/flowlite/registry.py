"""Registry of task definitions keyed by their unique ID."""

from __future__ import annotations

from collections.abc import Iterator
from uuid import UUID

from flowlite.exceptions import TaskError
from flowlite.exceptions import TaskNotFoundError
from flowlite.tasks import Task


class TaskRegistry:
    """
    Holds registered tasks.

    Dependency references are not validated here: a task may depend on an ID that is
    registered later, and a dangling reference only surfaces when the task executes.
    """

    def __init__(self) -> None:
        self._tasks: dict[UUID, Task] = {}

    def add(self, task: Task) -> UUID:
        """Store `task` under its ID and return the ID."""
        if task.id in self._tasks:
            raise TaskError(f"A task with ID {task.id} is already registered.")
        self._tasks[task.id] = task
        return task.id

    def get(self, task_id: UUID, *, parent_id: UUID | None = None) -> Task:
        """
        Return the task registered under `task_id`.

        Args:
            task_id: ID to look up.
            parent_id: ID of the task requesting `task_id` as a dependency, if any. Only
                used to produce a more helpful error message.

        Raises:
            TaskNotFoundError: If no such task exists.
        """
        try:
            return self._tasks[task_id]
        except (KeyError, TypeError):
            raise TaskNotFoundError(task_id, parent_id=parent_id) from None

    def find_by_name(self, name: str) -> list[Task]:
        """Return every task registered with the given display name."""
        return [task for task in self._tasks.values() if task.name == name]

    def __contains__(self, task_id: object) -> bool:
        try:
            return task_id in self._tasks
        except TypeError:
            return False

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def __len__(self) -> int:
        return len(self._tasks)
