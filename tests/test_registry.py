"""Unit tests for the task registry."""

from uuid import uuid4

import pytest

from flowlite import Task
from flowlite import TaskNotFoundError
from flowlite.exceptions import TaskError
from flowlite.registry import TaskRegistry


def _task(name: str = "task") -> Task:
    return Task(id=uuid4(), name=name, func=lambda ctx: None)


class TestTaskRegistry:
    """Tests for TaskRegistry."""

    def test_add_and_get(self) -> None:
        registry = TaskRegistry()
        task = _task()
        assert registry.add(task) == task.id
        assert registry.get(task.id) is task
        assert task.id in registry
        assert len(registry) == 1

    def test_get_unknown_raises(self) -> None:
        registry = TaskRegistry()
        missing = uuid4()
        with pytest.raises(TaskNotFoundError, match=f"Task {missing} not found") as exc_info:
            registry.get(missing)
        assert exc_info.value.task_id == missing

    def test_get_unknown_dependency_mentions_parent(self) -> None:
        registry = TaskRegistry()
        missing, parent = uuid4(), uuid4()
        with pytest.raises(TaskNotFoundError, match=f"Dependency task {missing} of task {parent}"):
            registry.get(missing, parent_id=parent)

    def test_unhashable_id_is_not_found(self) -> None:
        registry = TaskRegistry()
        with pytest.raises(TaskNotFoundError):
            registry.get(["not", "hashable"])  # type: ignore[arg-type]
        assert ["not", "hashable"] not in registry

    def test_duplicate_id_rejected(self) -> None:
        registry = TaskRegistry()
        task = _task()
        registry.add(task)
        with pytest.raises(TaskError, match="already registered"):
            registry.add(task)

    def test_iteration_in_registration_order(self) -> None:
        registry = TaskRegistry()
        tasks = [_task("a"), _task("b"), _task("c")]
        for task in tasks:
            registry.add(task)
        assert list(registry) == tasks

    def test_find_by_name(self) -> None:
        registry = TaskRegistry()
        first, second, other = _task("dup"), _task("dup"), _task("other")
        for task in (first, second, other):
            registry.add(task)
        assert registry.find_by_name("dup") == [first, second]
        assert registry.find_by_name("missing") == []
