"""Workflow: task registration, middleware, execution and event-driven triggers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Mapping
from inspect import isclass
from typing import TYPE_CHECKING, Any, overload
from uuid import UUID
from uuid import uuid4

from flowlite.context import Context
from flowlite.engine import DetachedRuns
from flowlite.engine import Engine
from flowlite.events import EventHandler
from flowlite.events import EventRegistry
from flowlite.registry import TaskRegistry
from flowlite.settings import get_global_settings
from flowlite.settings import validate_retry_options
from flowlite.tasks import ConditionFunc
from flowlite.tasks import Middleware
from flowlite.tasks import Task
from flowlite.tasks import TaskFunc
from flowlite.tasks import as_dependency_spec
from flowlite.utils import build_repr
from flowlite.utils import callable_name

if TYPE_CHECKING:
    from pluggy import PluginManager

logger = logging.getLogger(__name__)

EVENT_PAYLOAD_KEY = "event_payload"
"""Context key holding the event payload in executions started by a trigger."""


class Workflow:
    """
    A set of tasks that can be executed directly or triggered by events.

    Args:
        middlewares: Middleware applied around every task body, in order. More can be added
            later with `use()`.
        max_retries: Maximum number of attempts per task. Defaults to the global settings.
        retry_delay: Fixed delay between attempts in milliseconds. Defaults to the global
            settings.
        hooks: Hook implementations receiving lifecycle events of this workflow only, in
            addition to the globally registered hooks.

    Examples:
        >>> workflow = Workflow(max_retries=3, retry_delay=100)
        >>> fetch_id = workflow.add_task(lambda ctx: [1, 2, 3], name="fetch")
        >>> total_id = workflow.add_task(
        ...     lambda ctx: sum(ctx.get_result(fetch_id)),
        ...     name="total",
        ...     dependencies=[fetch_id],
        ... )
        >>> workflow.execute(total_id)
        6
    """

    def __init__(
        self,
        middlewares: Iterable[Middleware] | None = None,
        *,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        hooks: list[Any] | None = None,
    ) -> None:
        settings = get_global_settings()
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self.retry_delay = settings.retry_delay if retry_delay is None else retry_delay
        validate_retry_options(self.max_retries, self.retry_delay)

        for hook in hooks or []:
            if isclass(hook):
                raise TypeError(
                    "flowlite expects hooks to be registered as instances. "
                    "Have you forgotten the `()` when registering a hook class?"
                )

        self._middlewares: list[Middleware] = list(middlewares or [])
        self._hooks = list(hooks or [])
        self._registry = TaskRegistry()
        self._events = EventRegistry(on_error=self._report_event_error)
        self._detached = DetachedRuns()

    # region Tasks

    def add_task(
        self,
        func: TaskFunc,
        *,
        name: str | None = None,
        dependencies: Iterable[Any] | Callable[[Context], Any] | None = None,
        condition: ConditionFunc | None = None,
        triggers: Iterable[str] | None = None,
        description: str | None = None,
    ) -> UUID:
        """
        Register a task and return its unique ID.

        Dependencies are not validated here; an unknown dependency ID only fails when the
        task executes. Every trigger name installs an event handler that starts an execution
        of the task, with the event payload stored under `EVENT_PAYLOAD_KEY`.

        Args:
            func: Task body, called with the execution `Context`. May be sync or async.
            name: Display name. Defaults to the function's `__name__`.
            dependencies: Task IDs (or registered `Task` objects) to execute first, or a
                function of the context returning such a list, evaluated at execution time.
            condition: Predicate of the context, sync or async. When false the task is
                skipped and its result is None.
            triggers: Event names that start an execution of this task.
            description: Task description. Defaults to the function's docstring.

        Returns:
            The ID assigned to the task.
        """
        return self._register(
            func,
            name=name,
            dependencies=dependencies,
            condition=condition,
            triggers=triggers,
            description=description,
        ).id

    @overload
    def task(self, func: TaskFunc, /) -> Task: ...

    @overload
    def task(
        self,
        *,
        name: str | None = None,
        dependencies: Iterable[Any] | Callable[[Context], Any] | None = None,
        condition: ConditionFunc | None = None,
        triggers: Iterable[str] | None = None,
        description: str | None = None,
    ) -> Callable[[TaskFunc], Task]: ...

    def task(
        self,
        func: TaskFunc | None = None,
        *,
        name: str | None = None,
        dependencies: Iterable[Any] | Callable[[Context], Any] | None = None,
        condition: ConditionFunc | None = None,
        triggers: Iterable[str] | None = None,
        description: str | None = None,
    ) -> Task | Callable[[TaskFunc], Task]:
        """
        Decorator registering a function as a task of this workflow.

        Accepts the same options as `add_task()` and returns the registered `Task`, whose
        `id` can be used as a dependency of other tasks.

        Examples:
            >>> workflow = Workflow()
            >>> @workflow.task
            ... def check_inventory(ctx):
            ...     return [{"item": "item1", "available": True}]
            >>> @workflow.task(dependencies=[check_inventory])
            ... async def process_payment(ctx):
            ...     return {"status": "success"}
        """

        def decorator(fn: TaskFunc) -> Task:
            return self._register(
                fn,
                name=name,
                dependencies=dependencies,
                condition=condition,
                triggers=triggers,
                description=description,
            )

        if func is not None:
            return decorator(func)

        return decorator

    def get(self, task_id: UUID) -> Task:
        """
        Return the task registered under `task_id`.

        Raises:
            TaskNotFoundError: If no such task exists.
        """
        return self._registry.get(task_id)

    def find_by_name(self, name: str) -> list[Task]:
        """Return every task registered with the display name `name`, in registration order."""
        return self._registry.find_by_name(name)

    @property
    def tasks(self) -> list[Task]:
        """Registered tasks, in registration order."""
        return list(self._registry)

    def _register(
        self,
        func: TaskFunc,
        *,
        name: str | None,
        dependencies: Any,
        condition: ConditionFunc | None,
        triggers: Iterable[str] | None,
        description: str | None,
    ) -> Task:
        task = Task(
            id=uuid4(),
            name=name if name is not None else callable_name(func),
            func=func,
            dependencies=as_dependency_spec(dependencies),
            condition=condition,
            triggers=tuple(triggers) if triggers is not None else (),
            description=description if description is not None else (func.__doc__ or ""),
        )
        self._registry.add(task)
        for event_name in task.triggers:
            self._events.on(event_name, self._make_trigger_handler(task, event_name))
        logger.debug(f"Registered task '{task.name}' ({task.id})")
        return task

    # region Middleware

    def use(self, middleware: Middleware) -> None:
        """Append `middleware`; it applies to every execution started afterwards."""
        self._middlewares.append(middleware)

    @property
    def middlewares(self) -> list[Middleware]:
        return list(self._middlewares)

    # region Execution

    async def execute_async(
        self, task_id: UUID, initial_data: Mapping[str, Any] | Context | None = None
    ) -> Any:
        """
        Execute a task and its dependency tree within the running event loop.

        Args:
            task_id: ID of the task to execute.
            initial_data: Data seeding the fresh execution context, or an existing `Context`
                to execute against.

        Returns:
            The task's result, or None if the task was skipped by its condition.

        Raises:
            TaskNotFoundError: If the task or one of its dependencies is not registered.
            CycleDetectedError: If the dependency tree contains a cycle.
            Exception: The first unrecoverable failure of the dependency tree, after retries.
        """
        engine = Engine(
            registry=self._registry,
            hook_manager=self._get_hook_manager(),
            middlewares=tuple(self._middlewares),
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            detached=self._detached,
        )
        return await engine.execute(task_id, initial_data)

    def execute(
        self, task_id: UUID, initial_data: Mapping[str, Any] | Context | None = None
    ) -> Any:
        """
        Execute a task synchronously.

        Runs `execute_async()` in a new event loop, then waits for any execution triggered by
        events emitted meanwhile and for dependencies still running after a failure aborted
        their parent, so that nothing started by this call is cancelled when the loop shuts
        down. For use inside async code, call `execute_async()` instead.
        """

        async def _main() -> Any:
            try:
                return await self.execute_async(task_id, initial_data)
            finally:
                await self.drain()

        return asyncio.run(_main())

    # region Events

    def emit(self, event_name: str, payload: Any = None) -> None:
        """
        Emit an event, fire-and-forget.

        Every handler registered for `event_name` is invoked with `payload`; tasks triggered
        by the event start independent executions on the running event loop, or on a
        background event loop thread when called from synchronous code. This method returns
        without waiting for them, and their failures are not raised here (they are logged and
        reported through the `on_event_error` hook). Emitting an event nobody listens to is a
        no-op.

        Examples:
            >>> workflow.emit("order.created", {"order_id": "order-1"})
            >>> asyncio.run(workflow.drain())  # wait for the triggered executions
        """
        handlers = self._events.handlers(event_name)
        self._get_hook_manager().hook.on_event_emit(
            event_name=event_name, payload=payload, handler_count=len(handlers)
        )
        if not handlers:
            logger.debug(f"No handlers registered for event '{event_name}'")
            return
        self._events.dispatch(event_name, payload)

    def on(self, event_name: str, handler: EventHandler) -> None:
        """Register `handler` (called with the event payload) for `event_name`."""
        self._events.on(event_name, handler)

    def off(self, event_name: str, handler: EventHandler) -> bool:
        """Remove `handler` from `event_name`; returns False if it was not registered."""
        return self._events.off(event_name, handler)

    def handlers(self, event_name: str) -> list[EventHandler]:
        """Handlers registered for `event_name`, including task triggers."""
        return self._events.handlers(event_name)

    @property
    def pending_events(self) -> int:
        """Number of event-triggered executions still running."""
        return self._events.pending

    def event_names(self) -> list[str]:
        """Names of the events with at least one handler, including task triggers."""
        return self._events.event_names()

    async def drain(self) -> None:
        """
        Wait for every event-triggered execution to finish.

        Also waits for dependencies of this event loop that were still running when a failure
        aborted the task depending on them. Executions started from synchronous code run on
        the background event loop and are awaited as well.
        """
        while True:
            await self._events.drain()
            await self._detached.wait()
            if not self._events.pending:
                return

    def close(self) -> None:
        """
        Stop the background event loop used by events emitted from synchronous code.

        Call `drain()` first: executions still running on that loop are abandoned.
        """
        self._events.close()

    def _make_trigger_handler(self, task: Task, event_name: str) -> EventHandler:
        task_id = task.id

        def handler(payload: Any) -> None:
            self._events.spawn(
                event_name,
                payload,
                lambda: self._run_triggered(task_id, payload),
            )

        handler.__name__ = f"trigger_{task.name}"
        return handler

    async def _run_triggered(self, task_id: UUID, payload: Any) -> Any:
        try:
            return await self.execute_async(task_id, {EVENT_PAYLOAD_KEY: payload})
        finally:
            # Runs orphaned by a failure must finish on the loop that owns them
            await self._detached.wait()

    def _report_event_error(self, event_name: str, payload: Any, error: BaseException) -> None:
        self._get_hook_manager().hook.on_event_error(
            event_name=event_name, payload=payload, error=error
        )

    # region Helpers

    def _get_hook_manager(self) -> PluginManager:
        """Get hook manager for this workflow's executions."""
        from flowlite.plugins.manager import create_hook_manager_with_plugins
        from flowlite.plugins.manager import get_hook_manager

        if self._hooks:
            return create_hook_manager_with_plugins(self._hooks)
        return get_hook_manager()

    def __len__(self) -> int:
        return len(self._registry)

    def __repr__(self) -> str:
        return build_repr(
            "Workflow",
            kwargs={
                "tasks": len(self._registry),
                "max_retries": self.max_retries,
                "retry_delay": self.retry_delay,
            },
        )
