"""Execution engine for flowlite task graphs."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from functools import partial
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from pluggy import PluginManager

from flowlite.context import Context
from flowlite.context import result_key
from flowlite.context import skipped_key
from flowlite.exceptions import CycleDetectedError
from flowlite.registry import TaskRegistry
from flowlite.runtime import reset_current_task
from flowlite.runtime import set_current_task
from flowlite.tasks import Middleware
from flowlite.tasks import Task
from flowlite.tasks import resolve_dependencies
from flowlite.utils import maybe_await

logger = logging.getLogger(__name__)


class DetachedRuns:
    """
    Thread-safe set of task runs that outlived the execution that started them.

    A failing dependency aborts its parent while sibling dependencies keep running. Those
    siblings are tracked here until they finish so that callers can wait for them (see
    `wait()`) before their event loop shuts down and cancels whatever is still pending.
    """

    def __init__(self) -> None:
        self._runs: set[asyncio.Task[Any]] = set()
        self._lock = threading.Lock()

    def add(self, run: asyncio.Task[Any]) -> None:
        with self._lock:
            if run in self._runs:
                return
            self._runs.add(run)
        run.add_done_callback(self._discard)

    async def wait(self) -> None:
        """Wait until every detached run of the running event loop has finished."""
        loop = asyncio.get_running_loop()
        while True:
            with self._lock:
                runs = [run for run in self._runs if run.get_loop() is loop]
            if not runs:
                return
            await asyncio.gather(*runs, return_exceptions=True)

    def _discard(self, run: asyncio.Task[Any]) -> None:
        with self._lock:
            self._runs.discard(run)

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)


@dataclass
class Engine:
    """
    Engine executing a task and its dependency tree.

    Each top-level `execute()` call gets its own `ExecutionState`, holding a single `Context`
    shared by every task of the tree, so tasks can read results recorded by the tasks they
    depend on.

    Per task, execution goes through the following phases:
        1. Condition check: a false condition records a skip marker and returns None. No
           dependencies run, no middleware runs and no retry applies.
        2. Dependencies: resolved against the current context and executed concurrently.
           The first dependency failure aborts the task. Sibling dependencies already in
           flight are *not* cancelled; they run to completion and their context writes stay
           visible. They are handed over to `detached` so callers can wait for them.
        3. Running: pre middleware hooks, task body, result recorded in the context, post
           middleware hooks. A failure here is retried with a fixed delay until
           `max_retries` attempts have been made, then propagated.

    Within one execution each task runs at most once: a task reachable through several
    paths ("diamond" dependencies) is shared by every task that depends on it.
    """

    registry: TaskRegistry
    """Registry used to look up tasks by ID."""

    hook_manager: PluginManager
    """Hook manager receiving lifecycle events."""

    middlewares: Sequence[Middleware] = ()
    """Middleware applied around every task body, in order."""

    max_retries: int = 3
    """Maximum number of attempts for each task (attempt counting starts at 1)."""

    retry_delay: float = 1000.0
    """Fixed delay between attempts, in milliseconds."""

    detached: DetachedRuns = field(default_factory=DetachedRuns)
    """Runs left in flight when the task depending on them was aborted."""

    async def execute(
        self, task_id: UUID, initial_data: Mapping[str, Any] | Context | None = None
    ) -> Any:
        """
        Execute `task_id` and its dependency tree.

        Args:
            task_id: ID of the task to execute.
            initial_data: Data seeding a fresh context, or an existing `Context` to execute
                against.

        Returns:
            The task's result, or None if its condition was false.

        Raises:
            TaskNotFoundError: If `task_id` or one of the dependencies is not registered.
            CycleDetectedError: If the dependency tree contains a cycle.
            Exception: The first unrecoverable failure of the dependency tree.
        """
        root = self.registry.get(task_id)
        context = initial_data if isinstance(initial_data, Context) else Context(initial_data)
        state = ExecutionState(context=context)
        hook = self.hook_manager.hook

        hook.before_workflow_execute(root_id=root.id, root_name=root.name, context=context)
        start_time = time.perf_counter()
        try:
            result = await self._run(root.id, state)
        except Exception as e:
            duration = time.perf_counter() - start_time
            hook.on_workflow_error(
                root_id=root.id, root_name=root.name, context=context, error=e, duration=duration
            )
            raise
        finally:
            for run in state.unfinished():
                self.detached.add(run)

        duration = time.perf_counter() - start_time
        hook.after_workflow_execute(
            root_id=root.id, root_name=root.name, context=context, result=result, duration=duration
        )
        return result

    async def _run(
        self, task_id: UUID, state: ExecutionState, parent_id: UUID | None = None
    ) -> Any:
        """Return the result of `task_id`, starting it unless this execution already did."""
        run = state.runs.get(task_id)
        if run is None:
            task = self.registry.get(task_id, parent_id=parent_id)
            run = asyncio.create_task(self._execute_task(task, state))
            state.runs[task_id] = run
        return await run

    async def _execute_task(self, task: Task, state: ExecutionState) -> Any:
        """
        Run one task through its condition, dependency and running phases.

        Only the running phase is retried. An exception raised by the condition, or while
        resolving dependencies, propagates after a single evaluation: retrying re-enters the
        running phase without re-checking the condition or re-resolving dependencies.
        """
        context = state.context
        token = set_current_task(task)
        try:
            if task.condition is not None:
                if not await maybe_await(task.condition, context):
                    logger.debug(f"Skipping task '{task.name}' ({task.id}): condition is false")
                    context.set(skipped_key(task.id), True)
                    self.hook_manager.hook.on_task_skipped(task=task, context=context)
                    return None

            dependency_ids = await resolve_dependencies(task, context)
            if dependency_ids:
                state.wait_for(task.id, dependency_ids)
                try:
                    await self._execute_dependencies(task, dependency_ids, state)
                finally:
                    state.done_waiting(task.id)

            return await self._run_with_retries(task, context)
        finally:
            reset_current_task(token)

    async def _execute_dependencies(
        self, task: Task, dependency_ids: list[UUID], state: ExecutionState
    ) -> None:
        """Run dependencies concurrently, failing as soon as the first one fails."""
        runs = [
            asyncio.create_task(self._run(dep_id, state, parent_id=task.id))
            for dep_id in dependency_ids
        ]
        try:
            await asyncio.gather(*runs)
        except Exception:
            # No cancellation: siblings still running finish on their own
            for run in runs:
                if not run.done():
                    run.add_done_callback(partial(_log_orphaned_failure, task))
                    self.detached.add(run)
            raise

    async def _run_with_retries(self, task: Task, context: Context) -> Any:
        hook = self.hook_manager.hook
        hook.before_task_execute(task=task, context=context)

        last_error: Exception | None = None
        attempt = 0
        start_time = time.perf_counter()

        while attempt < self.max_retries:
            attempt += 1
            try:
                if attempt > 1:
                    assert last_error is not None
                    hook.before_task_retry(
                        task=task, context=context, attempt=attempt, last_error=last_error
                    )
                result = await self._run_attempt(task, context)
            except Exception as error:
                last_error = error
                if attempt > 1:
                    hook.after_task_retry(
                        task=task, context=context, attempt=attempt, succeeded=False
                    )
                if attempt < self.max_retries:
                    logger.debug(
                        f"Task '{task.name}' failed on attempt {attempt}/{self.max_retries}, "
                        f"retrying in {self.retry_delay}ms: {error!r}"
                    )
                    await asyncio.sleep(self.retry_delay / 1000)
                continue

            if attempt > 1:
                hook.after_task_retry(task=task, context=context, attempt=attempt, succeeded=True)
            hook.after_task_execute(
                task=task,
                context=context,
                result=result,
                attempts=attempt,
                duration=time.perf_counter() - start_time,
            )
            return result

        # All attempts exhausted
        assert last_error is not None
        hook.on_task_error(
            task=task,
            context=context,
            error=last_error,
            attempts=attempt,
            duration=time.perf_counter() - start_time,
        )
        raise last_error

    async def _run_attempt(self, task: Task, context: Context) -> Any:
        """One attempt of the running phase: pre hooks, body, post hooks."""
        for middleware in self.middlewares:
            if middleware.pre is not None:
                await maybe_await(middleware.pre, context)

        result = await maybe_await(task.func, context)
        context.set(result_key(task.id), result)

        for middleware in self.middlewares:
            if middleware.post is not None:
                await maybe_await(middleware.post, context, result)

        return result


@dataclass
class ExecutionState:
    """
    Mutable state of one top-level execution.

    Tracks the shared context, the run of every task started so far (so each task runs at
    most once) and a wait-for graph of which task is currently waiting on which
    dependencies, used to detect cycles before they turn into infinite recursion or a
    deadlock on a run that waits on itself.
    """

    context: Context
    """Context shared by every task of the execution."""

    runs: dict[UUID, asyncio.Task[Any]] = field(default_factory=dict)
    """Started task runs keyed by task ID."""

    waiting_on: dict[UUID, set[UUID]] = field(default_factory=dict)
    """Dependencies each task is currently waiting on."""

    def wait_for(self, task_id: UUID, dependency_ids: Sequence[UUID]) -> None:
        """
        Record that `task_id` waits on `dependency_ids`.

        Raises:
            CycleDetectedError: If a dependency is `task_id` itself or (transitively) waits
                on `task_id`.
        """
        for dep_id in dependency_ids:
            path = self._find_path(dep_id, task_id)
            if path is not None:
                raise CycleDetectedError([task_id, *path])
        self.waiting_on.setdefault(task_id, set()).update(dependency_ids)

    def done_waiting(self, task_id: UUID) -> None:
        self.waiting_on.pop(task_id, None)

    def unfinished(self) -> list[asyncio.Task[Any]]:
        """Runs started by this execution that have not finished yet."""
        return [run for run in self.runs.values() if not run.done()]

    def _find_path(self, start: UUID, goal: UUID) -> list[UUID] | None:
        """Return a wait-for path from `start` to `goal` (inclusive), if one exists."""
        stack: list[tuple[UUID, list[UUID]]] = [(start, [start])]
        seen: set[UUID] = set()
        while stack:
            node, path = stack.pop()
            if node == goal:
                return path
            if node in seen:
                continue
            seen.add(node)
            for successor in self.waiting_on.get(node, ()):
                stack.append((successor, [*path, successor]))
        return None


def _log_orphaned_failure(parent: Task, run: asyncio.Task[Any]) -> None:
    """Log failures of dependency runs that finished after their parent was aborted."""
    if run.cancelled():
        return
    error = run.exception()
    if error is not None:
        logger.warning(
            f"Dependency of aborted task '{parent.name}' failed after the abort: {error!r}"
        )
