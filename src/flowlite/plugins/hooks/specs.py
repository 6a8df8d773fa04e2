"""Hook specifications for flowlite execution lifecycle events."""

from typing import Any
from uuid import UUID

from flowlite.context import Context
from flowlite.tasks import Task

from .markers import hook_spec


class TaskSpec:
    """Hook specifications for task-level execution events."""

    @hook_spec
    def before_task_execute(self, task: Task, context: Context) -> None:
        """
        Called once before a task's first attempt, after its dependencies completed.

        Args:
            task: The task about to run.
            context: Shared execution context.
        """

    @hook_spec
    def after_task_execute(
        self, task: Task, context: Context, result: Any, attempts: int, duration: float
    ) -> None:
        """
        Called after a task completes successfully.

        Args:
            task: The task that ran.
            context: Shared execution context.
            result: Result returned by the task body.
            attempts: Number of attempts it took (1 when no retry was needed).
            duration: Time taken across all attempts in seconds.
        """

    @hook_spec
    def on_task_error(
        self, task: Task, context: Context, error: BaseException, attempts: int, duration: float
    ) -> None:
        """
        Called when a task fails for good, after its retries are exhausted.

        Args:
            task: The task that failed.
            context: Shared execution context.
            error: The exception raised by the last attempt.
            attempts: Number of attempts made.
            duration: Time taken across all attempts in seconds.
        """

    @hook_spec
    def on_task_skipped(self, task: Task, context: Context) -> None:
        """
        Called when a task's condition evaluates false and the task is skipped.

        Args:
            task: The skipped task.
            context: Shared execution context.
        """

    @hook_spec
    def before_task_retry(
        self, task: Task, context: Context, attempt: int, last_error: BaseException
    ) -> None:
        """
        Called before retrying a failed task, after the retry delay elapsed.

        Args:
            task: The task to be retried.
            context: Shared execution context.
            attempt: Attempt number (1-indexed, so attempt=2 means first retry).
            last_error: The exception that caused the previous attempt to fail.
        """

    @hook_spec
    def after_task_retry(self, task: Task, context: Context, attempt: int, succeeded: bool) -> None:
        """
        Called after a retry attempt completes.

        Args:
            task: The retried task.
            context: Shared execution context.
            attempt: Attempt number (1-indexed).
            succeeded: True if this retry attempt succeeded, False if it failed.
        """


class WorkflowSpec:
    """Hook specifications for top-level execution events."""

    @hook_spec
    def before_workflow_execute(self, root_id: UUID, root_name: str, context: Context) -> None:
        """
        Called before a top-level execution begins.

        Args:
            root_id: ID of the task being executed.
            root_name: Name of the task being executed.
            context: Fresh execution context, seeded with the initial data.
        """

    @hook_spec
    def after_workflow_execute(
        self, root_id: UUID, root_name: str, context: Context, result: Any, duration: float
    ) -> None:
        """
        Called after a top-level execution completes successfully.

        Args:
            root_id: ID of the executed task.
            root_name: Name of the executed task.
            context: Execution context in its final state.
            result: Result of the root task (None if it was skipped).
            duration: Total execution time in seconds.
        """

    @hook_spec
    def on_workflow_error(
        self,
        root_id: UUID,
        root_name: str,
        context: Context,
        error: BaseException,
        duration: float,
    ) -> None:
        """
        Called when a top-level execution fails.

        Args:
            root_id: ID of the executed task.
            root_name: Name of the executed task.
            context: Execution context in the state the failure left it in.
            error: The first unrecoverable exception of the dependency tree.
            duration: Time taken before failure in seconds.
        """


class EventSpec:
    """Hook specifications for the event bridge."""

    @hook_spec
    def on_event_emit(self, event_name: str, payload: Any, handler_count: int) -> None:
        """
        Called when an event is emitted, before its handlers are invoked.

        Args:
            event_name: Name of the emitted event.
            payload: Payload passed to `emit()`.
            handler_count: Number of handlers registered for the event.
        """

    @hook_spec
    def on_event_error(self, event_name: str, payload: Any, error: BaseException) -> None:
        """
        Called when an event handler, or an execution it started, fails.

        Args:
            event_name: Name of the event whose handling failed.
            payload: Payload passed to `emit()`.
            error: The exception that was raised.
        """
