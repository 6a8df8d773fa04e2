"""
Task-aware logging for flowlite workflows.

`get_logger()` returns a standard `logging.LoggerAdapter` that tags every record with the
task currently running, and `LoggingPlugin` reports task lifecycle events (start, retry,
skip, failure, completion) through Python's logging system.

Example:
    >>> from flowlite import Workflow
    >>> from flowlite.plugins.default import LoggingPlugin, get_logger
    >>>
    >>> workflow = Workflow(hooks=[LoggingPlugin(level=logging.INFO)])
    >>>
    >>> @workflow.task
    ... def my_task(ctx):
    ...     logger = get_logger(__name__)
    ...     logger.info("Processing order %s", ctx.get("order_id"))
    ...     return True
"""

import logging
from collections.abc import MutableMapping
from typing import Any

from flowlite.context import Context
from flowlite.plugins.hooks.markers import hook_impl
from flowlite.runtime import get_current_task
from flowlite.tasks import Task

DEFAULT_LOGGER_NAME = "flowlite.tasks"
LIFECYCLE_LOGGER_NAME = "flowlite.lifecycle"
DEFAULT_LOGGER_FORMAT = "%(asctime)s - Task: %(flowlite_task_name)s - %(levelname)s - %(message)s"


class TaskLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that automatically injects task context into log records.

    This adapter adds `flowlite_task_id` and `flowlite_task_name` to the 'extra' dict of all
    log records, making them available for use in log formatters (e.g.
    "%(flowlite_task_name)s"). Outside of a running task both are set to "unknown".
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        task = get_current_task()
        extra.setdefault("flowlite_task_id", str(task.id) if task else "unknown")
        extra.setdefault("flowlite_task_name", task.name if task else "unknown")
        kwargs["extra"] = extra
        return msg, dict(kwargs)


def get_logger(name: str | None = None) -> logging.LoggerAdapter:
    """
    Get a logger whose records carry the context of the task currently running.

    Args:
        name: Logger name for code organization. If None, uses "flowlite.tasks". Typically use
            `__name__` for module-based naming. Task context (`flowlite_task_name`,
            `flowlite_task_id`) is added to log records regardless of logger name.

    Returns:
        LoggerAdapter instance with automatic task context injection.

    Examples:
        Configure logging with a task-aware format
        >>> import logging
        >>> logging.basicConfig(
        ...     format="%(flowlite_task_name)s [%(levelname)s] %(message)s", level=logging.INFO
        ... )
    """
    return TaskLoggerAdapter(logging.getLogger(name or DEFAULT_LOGGER_NAME), {})


class LoggingPlugin:
    """
    Plugin that logs task and workflow lifecycle events.

    Args:
        level: Level used for start/completion messages. Retries are logged at WARNING and
            failures at ERROR regardless of this level.
        logger_name: Name of the logger that receives the lifecycle messages.

    Examples:
        >>> from flowlite.plugins.default import LoggingPlugin
        >>> workflow = Workflow(hooks=[LoggingPlugin(level=logging.INFO)])
    """

    def __init__(self, level: int = logging.DEBUG, logger_name: str = LIFECYCLE_LOGGER_NAME):
        self._level = level
        self._logger = logging.getLogger(logger_name)

    @hook_impl
    def before_workflow_execute(self, root_id: Any, root_name: str) -> None:
        self._logger.log(self._level, "Executing workflow rooted at '%s' (%s)", root_name, root_id)

    @hook_impl
    def after_workflow_execute(self, root_name: str, duration: float) -> None:
        self._logger.log(self._level, "Workflow '%s' completed in %.3fs", root_name, duration)

    @hook_impl
    def on_workflow_error(self, root_name: str, error: BaseException, duration: float) -> None:
        self._logger.error(
            "Workflow '%s' failed after %.3fs: %s: %s",
            root_name,
            duration,
            type(error).__name__,
            error,
        )

    @hook_impl
    def before_task_execute(self, task: Task) -> None:
        self._logger.log(self._level, "Task '%s' started", task.name)

    @hook_impl
    def after_task_execute(self, task: Task, attempts: int, duration: float) -> None:
        suffix = f" after {attempts} attempts" if attempts > 1 else ""
        self._logger.log(
            self._level, "Task '%s' completed in %.3fs%s", task.name, duration, suffix
        )

    @hook_impl
    def on_task_skipped(self, task: Task, context: Context) -> None:
        self._logger.log(self._level, "Task '%s' skipped: condition is false", task.name)

    @hook_impl
    def before_task_retry(self, task: Task, attempt: int, last_error: BaseException) -> None:
        self._logger.warning(
            "Retrying task '%s' (attempt %d) after %s: %s",
            task.name,
            attempt,
            type(last_error).__name__,
            last_error,
        )

    @hook_impl
    def on_task_error(self, task: Task, error: BaseException, attempts: int) -> None:
        self._logger.error(
            "Task '%s' failed after %d attempt(s): %s: %s",
            task.name,
            attempts,
            type(error).__name__,
            error,
        )

    @hook_impl
    def on_event_error(self, event_name: str, error: BaseException) -> None:
        self._logger.error(
            "Handling of event '%s' failed: %s: %s", event_name, type(error).__name__, error
        )
