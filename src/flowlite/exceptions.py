"""
Centralized exception classes for the flowlite library.

All flowlite-specific exceptions inherit from FlowliteError for easy catching.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class FlowliteError(Exception):
    """Base exception for all flowlite errors."""


class ConfigurationError(FlowliteError, ValueError):
    """Raised when a workflow or the global settings are configured with invalid values."""


class TaskError(FlowliteError):
    """Raised when a task is defined incorrectly."""


class TaskNotFoundError(FlowliteError, LookupError):
    """Raised when a task ID does not exist in the registry."""

    def __init__(self, task_id: Any, *, parent_id: Any | None = None) -> None:
        self.task_id = task_id
        self.parent_id = parent_id
        if parent_id is None:
            message = f"Task {task_id} not found"
        else:
            message = f"Dependency task {task_id} of task {parent_id} not found"
        super().__init__(message)


class RequiredKeyMissingError(FlowliteError, KeyError):
    """Raised when a required context key is absent."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the whole message
        return f'Required context key "{self.key}" not found'


class ExecutionError(FlowliteError):
    """Raised when there's an error during task graph execution."""


class CycleDetectedError(ExecutionError):
    """Raised when a task depends on itself, directly or through other tasks."""

    def __init__(self, cycle: Sequence[Any]) -> None:
        self.cycle = tuple(cycle)
        path = " -> ".join(str(task_id) for task_id in self.cycle)
        super().__init__(f"Circular dependency detected: {path}")
