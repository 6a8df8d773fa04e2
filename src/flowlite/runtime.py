"""Execution context variables for the task currently running."""

from contextvars import ContextVar
from contextvars import Token

from flowlite.tasks import Task

# asyncio copies the current context into every task it creates, so concurrently running
# sibling tasks each see their own value
_current_task: ContextVar[Task | None] = ContextVar("current_task", default=None)


def set_current_task(task: Task) -> Token[Task | None]:
    """
    Mark `task` as the task running in the current execution context.

    Args:
        task: The task about to run.

    Returns:
        Token to pass to `reset_current_task()`.
    """
    return _current_task.set(task)


def get_current_task() -> Task | None:
    """Return the task running in the current execution context, if any."""
    return _current_task.get()


def reset_current_task(token: Token[Task | None]) -> None:
    """Restore the task that was current before the matching `set_current_task()` call."""
    _current_task.reset(token)
