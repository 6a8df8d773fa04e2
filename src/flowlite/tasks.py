"""Task definitions, middleware and dependency resolution."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING, Any, Union
from uuid import UUID

from flowlite.exceptions import TaskError
from flowlite.utils import build_repr
from flowlite.utils import maybe_await

if TYPE_CHECKING:
    from flowlite.context import Context

TaskFunc = Callable[["Context"], Any]
"""Task body: receives the execution context, may be sync or async."""

ConditionFunc = Callable[["Context"], Any]
"""Condition predicate: receives the execution context, returns (or awaits to) a bool."""

DependencyFunc = Callable[["Context"], Any]
"""Dynamic dependency function: receives the execution context, returns a list of task IDs."""


# region Dependency specifications


@dataclass(frozen=True)
class StaticDependencies:
    """A fixed, ordered list of dependency task IDs."""

    task_ids: tuple[UUID, ...]
    """Dependency IDs in declaration order. Duplicates and self references are kept."""


@dataclass(frozen=True)
class DynamicDependencies:
    """Dependencies computed from the execution context each time the task executes."""

    func: DependencyFunc
    """Function from `Context` to a list of task IDs."""


DependencySpec = Union[StaticDependencies, DynamicDependencies]


def as_dependency_spec(value: Any) -> DependencySpec | None:
    """
    Normalize user input into a `DependencySpec`.

    Accepts None, an existing spec, a callable (dynamic dependencies) or an iterable of task
    IDs and/or registered `Task` objects (static dependencies).

    Raises:
        TaskError: If the value cannot be interpreted as a dependency specification.
    """
    if value is None:
        return None
    if isinstance(value, (StaticDependencies, DynamicDependencies)):
        return value
    if callable(value):
        return DynamicDependencies(func=value)
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise TaskError(
            "Task dependencies must be a list of task IDs or a function of the context, "
            f"got {type(value).__name__!r}."
        )
    return StaticDependencies(task_ids=tuple(_as_task_id(item) for item in value))


async def resolve_dependencies(task: Task, context: Context) -> list[UUID]:
    """
    Turn a task's dependency specification into a concrete list of task IDs.

    Static dependencies are returned verbatim. Dynamic dependencies are evaluated against the
    current context on every call, so the result can differ between executions.

    Raises:
        TaskError: If a dynamic dependency function returns something other than a list.
    """
    spec = task.dependencies
    if spec is None:
        return []
    if isinstance(spec, StaticDependencies):
        return list(spec.task_ids)

    resolved = await maybe_await(spec.func, context)
    if resolved is None:
        return []
    if isinstance(resolved, (str, bytes)) or not isinstance(resolved, (list, tuple)):
        raise TaskError(
            f"Dependency function of task '{task.name}' must return a list of task IDs, "
            f"got {type(resolved).__name__!r}."
        )
    return [_as_task_id(item) for item in resolved]


def _as_task_id(item: Any) -> Any:
    return item.id if isinstance(item, Task) else item


# region Task


@dataclass(frozen=True)
class Task:
    """
    A registered unit of work.

    Users should **not** directly instantiate this class, use `Workflow.add_task` or the
    `Workflow.task` decorator instead; those assign the unique `id`.
    """

    id: UUID
    """Unique identifier assigned at registration."""

    name: str
    """Display name of the task."""

    func: TaskFunc
    """Task body, called with the execution context."""

    dependencies: DependencySpec | None = None
    """Tasks that must complete before this one runs."""

    condition: ConditionFunc | None = None
    """Optional predicate deciding whether the task runs at all."""

    triggers: tuple[str, ...] = ()
    """Event names that start an execution of this task when emitted."""

    description: str = ""
    """Task description, defaults to the body's docstring."""

    def __post_init__(self) -> None:
        if inspect.isclass(self.func) or not callable(self.func):
            raise TaskError(f"Body of task '{self.name}' must be callable.")
        if self.condition is not None and not callable(self.condition):
            raise TaskError(f"Condition of task '{self.name}' must be callable.")
        if isinstance(self.triggers, str):
            raise TaskError(
                f"Triggers of task '{self.name}' must be a list of event names, not a string."
            )

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.func)

    def __repr__(self) -> str:
        return build_repr("Task", repr(self.name), f"id={self.id}")


# region Middleware


@dataclass(frozen=True)
class Middleware:
    """
    Pre/post hooks applied around every task body of a workflow.

    Either hook may be sync or async. Hooks registered on a workflow run in registration
    order: all `pre` hooks before the body, all `post` hooks after it.

    Examples:
        >>> calls = []
        >>> audit = Middleware(
        ...     pre=lambda ctx: calls.append("pre"),
        ...     post=lambda ctx, result: calls.append(("post", result)),
        ... )
    """

    pre: Callable[[Context], Any] | None = None
    """Called with the context before the task body."""

    post: Callable[[Context, Any], Any] | None = None
    """Called with the context and the task result after the task body."""

    name: str = field(default="", compare=False)
    """Optional label used in log messages."""
